"""Conversation export to plain text or markdown with citations as links."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from src.utils.errors import UnsupportedExportFormat

from .citations import VideoRef, citations_to_links


class ExportFormat(str, Enum):
    TXT = "txt"
    MD = "md"
    PDF = "pdf"


class ExportMessage(BaseModel):
    role: str
    content: str
    created_at: datetime | None = None


class ExportedFile(BaseModel):
    """Rendered export ready to be served as an attachment."""

    content: str
    media_type: str
    filename: str


def export_conversation(
    title: str,
    created_at: datetime,
    messages: list[ExportMessage],
    videos: Mapping[str, VideoRef],
    export_format: ExportFormat = ExportFormat.TXT,
) -> ExportedFile:
    """Render a conversation for download.

    Citations that resolve against `videos` become links; the others are left
    as written.

    Args:
        title: Conversation title, also used for the filename.
        created_at: Conversation creation time.
        messages: Messages in chronological order.
        videos: Videos linked to the conversation, by internal video id.
        export_format: Output format.

    Returns:
        ExportedFile with content, media type and filename.

    Raises:
        UnsupportedExportFormat: For PDF, which is not supported.
    """
    created = created_at.date().isoformat()

    if export_format == ExportFormat.PDF:
        raise UnsupportedExportFormat(
            "PDF export temporarily disabled. Please use TXT or Markdown format."
        )

    if export_format == ExportFormat.MD:
        lines = [f"# {title}\n\n", f"*Created: {created}*\n\n---\n\n"]
        for message in messages:
            role = "**You**" if message.role == "user" else "**Assistant**"
            body = citations_to_links(message.content, videos, markdown=True)
            lines.append(f"### {role}\n\n{body}\n\n---\n\n")
        return ExportedFile(
            content="".join(lines), media_type="text/markdown", filename=f"{title}.md"
        )

    lines = [f"{title}\n", f"Created: {created}\n\n", "=" * 50 + "\n\n"]
    for message in messages:
        role = "You" if message.role == "user" else "Assistant"
        body = citations_to_links(message.content, videos, markdown=False)
        lines.append(f"{role}:\n{body}\n\n{'-' * 50}\n\n")
    return ExportedFile(content="".join(lines), media_type="text/plain", filename=f"{title}.txt")
