"""Configuration module for retrieval and context assembly."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class RetrievalConfig(BaseModel):
    """Configuration for collection fan-out and prompt context limits.

    All settings can be overridden via environment variables.
    """

    # Per-collection query timeout
    query_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("QUERY_TIMEOUT_SECONDS", "8")), gt=0
    )

    # Upper bound on the assembled context block
    max_context_chars: int = Field(
        default_factory=lambda: int(os.getenv("MAX_CONTEXT_CHARS", "24000")), ge=1
    )

    # Wall-clock ceiling for one chat/compose request, enforced by the host platform
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30")), gt=0
    )

    @model_validator(mode="after")
    def _query_fits_request(self) -> "RetrievalConfig":
        # Retrieval must finish with time left for generation
        if self.query_timeout_seconds >= self.request_timeout_seconds:
            raise ValueError(
                f"query_timeout_seconds ({self.query_timeout_seconds}) must be below "
                f"request_timeout_seconds ({self.request_timeout_seconds})"
            )
        return self


def get_config() -> RetrievalConfig:
    """Get validated retrieval configuration.

    Raises:
        ValidationError: If environment variables are present but invalid.
    """
    return RetrievalConfig()
