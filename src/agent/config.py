"""Agent configuration utilities.

Provides functions for loading LLM configuration and the model allow-list
from environment variables.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic_ai.models.openai import OpenAIModel
from pydantic_ai.providers.openai import OpenAIProvider

from src.utils.logging import get_logger

logger = get_logger(__name__)

# Check if we're in production
is_production = os.getenv("ENVIRONMENT") == "production"

if not is_production:
    # Development: prioritize .env file
    project_root = Path(__file__).resolve().parent.parent.parent
    dotenv_path = project_root / ".env"
    load_dotenv(dotenv_path, override=True)
else:
    # Production: use cloud platform env vars only
    load_dotenv()


def get_default_model_name() -> str:
    """Get the default model name from LLM_CHOICE (default: gpt-4o-mini)."""
    return os.getenv("LLM_CHOICE") or "gpt-4o-mini"


def get_available_models() -> list[str]:
    """Get the model names a request may select.

    Reads the comma-separated AVAILABLE_MODELS list. The default model is
    always available.

    Returns:
        Allowed model names, default first.

    Examples:
        >>> # AVAILABLE_MODELS="gpt-4o-mini, gpt-4o"
        >>> get_available_models()
        ['gpt-4o-mini', 'gpt-4o']
    """
    default = get_default_model_name()
    configured = [
        name.strip() for name in (os.getenv("AVAILABLE_MODELS") or "").split(",") if name.strip()
    ]
    return [default] + [name for name in configured if name != default]


def resolve_model_name(model_id: str | None = None) -> str:
    """Return `model_id` if it is on the allow-list, otherwise the default model."""
    if model_id and model_id in get_available_models():
        return model_id

    if model_id:
        logger.warning("model_not_allowed", requested=model_id)
    return get_default_model_name()


def get_model(model_id: str | None = None) -> OpenAIModel:
    """Get the configured LLM model for generation.

    Reads configuration from environment variables:
    - LLM_CHOICE: Default model name (default: gpt-4o-mini)
    - LLM_BASE_URL: API base URL (default: https://api.openai.com/v1)
    - LLM_API_KEY: API key (default: ollama for local testing)
    - AVAILABLE_MODELS: Extra model names a request may select

    Args:
        model_id: Requested model. Ignored unless it is on the allow-list.

    Returns:
        OpenAIModel configured with environment settings.

    Examples:
        >>> model = get_model()
        >>> # Uses gpt-4o-mini by default
    """
    llm = resolve_model_name(model_id)
    base_url = os.getenv("LLM_BASE_URL") or "https://api.openai.com/v1"
    api_key = os.getenv("LLM_API_KEY") or "ollama"

    return OpenAIModel(llm, provider=OpenAIProvider(base_url=base_url, api_key=api_key))
