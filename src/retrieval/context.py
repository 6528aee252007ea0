"""Context assembly and system prompts for grounded chat and compose.

Ranked passages are rendered as enumerated blocks carrying the video id and
start time recovered from each passage's path key. The chat prompt teaches
the model the citation token it must emit after every claim.
"""

import re
from enum import Enum
from typing import NamedTuple

from src.ingestion.schemas import SnippetResult
from src.utils.logging import get_logger

logger = get_logger(__name__)

NO_CONTEXT_MESSAGE = "No relevant information found in the selected video transcripts."

_CHUNK_FILENAME_RE = re.compile(r"chunk_\d+_(\d+(?:\.\d+)?)s")


class PassageLocation(NamedTuple):
    """Video id and start time (seconds) recovered from a path key."""

    video_id: str
    start_time: float


def parse_passage_path(path: str) -> PassageLocation:
    """Recover (video id, start seconds) from `{videoId}/chunk_{idx}_{start}s.txt`.

    A malformed path falls back to the prefix before the first "/" (or the
    whole path) and a start time of 0.0.

    Examples:
        >>> parse_passage_path("abc123/chunk_220_751.5s.txt")
        PassageLocation(video_id='abc123', start_time=751.5)
        >>> parse_passage_path("garbage")
        PassageLocation(video_id='garbage', start_time=0.0)
    """
    video_id, _, filename = path.partition("/")
    match = _CHUNK_FILENAME_RE.search(filename)
    return PassageLocation(video_id, float(match.group(1)) if match else 0.0)


def format_passage_block(index: int, passage: SnippetResult) -> str:
    location = parse_passage_path(passage.path)
    return (
        f"[Chunk {index}]\n"
        f"Video ID: {location.video_id}\n"
        f"Timestamp: {location.start_time}s\n"
        f"Content: {passage.content}\n"
        "---"
    )


def assemble_context(passages: list[SnippetResult], max_chars: int = 24000) -> str:
    """Render ranked passages as an enumerated context block.

    Passages are appended in rank order until the next block would push the
    context past `max_chars`. The first passage is always included.

    Args:
        passages: Globally ranked passages.
        max_chars: Upper bound on the context length.

    Returns:
        Context text, or NO_CONTEXT_MESSAGE when there are no passages.
    """
    if not passages:
        return NO_CONTEXT_MESSAGE

    blocks: list[str] = []
    length = 0
    for i, passage in enumerate(passages, start=1):
        block = format_passage_block(i, passage)
        added = len(block) + (2 if blocks else 0)
        if blocks and length + added > max_chars:
            logger.info(
                "context_truncated",
                included=len(blocks),
                available=len(passages),
                max_chars=max_chars,
            )
            break
        blocks.append(block)
        length += added

    return "\n\n".join(blocks)


# ==============================================================================
# Chat
# ==============================================================================

CHAT_SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based ONLY on the provided video transcript context.

IMPORTANT INSTRUCTIONS:
1. Base your entire answer STRICTLY on the provided context.
2. If the answer is not in the context, state: "I don't have information about that in the provided video transcripts." Do NOT use outside knowledge.
3. For EACH piece of information or claim you make, immediately cite the chunk it came from using the exact format [video_id: VIDEO_ID, time: SECONDS] right after the sentence or point, where VIDEO_ID is the chunk's Video ID and SECONDS is its Timestamp.
4. If multiple chunks support a single point, cite them all immediately after, separated by spaces, like this: [video_id: ID1, time: 12.5] [video_id: ID2, time: 98.0]
5. Be concise and accurate. Do not add introductory or concluding remarks not derived from the context.

CONTEXT FROM VIDEO TRANSCRIPTS:
{context}"""


def build_chat_system_prompt(context: str) -> str:
    """System prompt for grounded chat with the citation instructions."""
    return CHAT_SYSTEM_PROMPT.format(context=context)


# ==============================================================================
# Compose
# ==============================================================================


class ComposeTemplate(str, Enum):
    """Long-form content types produced from the scoped videos."""

    SUMMARY = "summary"
    BLOG_POST = "blog-post"
    OUTLINE = "outline"
    SOCIAL_POST = "social-post"


TEMPLATE_PROMPTS: dict[ComposeTemplate, str] = {
    ComposeTemplate.SUMMARY: """You are a professional content summarizer. Based on the provided video transcript context, create a comprehensive summary that:
- Captures all key points and main ideas
- Maintains logical flow and structure
- Highlights important takeaways
- Is concise yet thorough
- Uses clear, professional language""",
    ComposeTemplate.BLOG_POST: """You are a professional blog writer. Based on the provided video transcript context, create an engaging blog post that:
- Has an attention-grabbing introduction
- Is well-structured with clear sections and headings
- Explains concepts thoroughly with examples
- Maintains reader engagement throughout
- Includes a compelling conclusion
- Uses a conversational yet professional tone""",
    ComposeTemplate.OUTLINE: """You are a content organizer. Based on the provided video transcript context, create a detailed hierarchical outline that:
- Organizes information by main topics and subtopics
- Uses clear hierarchical structure (I, A, 1, a, etc.)
- Captures all key points in logical order
- Is easy to scan and understand
- Maintains consistency in formatting""",
    ComposeTemplate.SOCIAL_POST: """You are a social media content creator. Based on the provided video transcript context, create engaging social media content that:
- Captures attention immediately
- Is concise and impactful
- Includes key insights or quotes
- Uses appropriate tone for social platforms
- Encourages engagement
- Consider creating multiple variations for different platforms""",
}

# Used as the retrieval query when no custom prompt is given
TEMPLATE_QUERIES: dict[ComposeTemplate, str] = {
    ComposeTemplate.SUMMARY: "main points key ideas important concepts",
    ComposeTemplate.BLOG_POST: "detailed explanation examples use cases",
    ComposeTemplate.OUTLINE: "topics structure organization main ideas",
    ComposeTemplate.SOCIAL_POST: "key insights quotes highlights takeaways",
}


def compose_query(template: ComposeTemplate, custom_prompt: str | None = None) -> str:
    """Retrieval query for a compose request."""
    return custom_prompt or TEMPLATE_QUERIES[template]


def build_compose_system_prompt(
    template: ComposeTemplate, context: str, custom_prompt: str | None = None
) -> str:
    """System prompt for composing uncited long-form content.

    Args:
        template: Content type to produce.
        context: Assembled context block.
        custom_prompt: Extra user instructions, if any.

    Returns:
        System prompt text.
    """
    sections = [TEMPLATE_PROMPTS[template]]
    if custom_prompt:
        sections.append(f"Additional Instructions: {custom_prompt}")
    sections.append(f"CONTEXT FROM VIDEO TRANSCRIPTS:\n{context}")
    sections.append(
        "Generate the content based on the above context. Do not include citations "
        "or references to chunk numbers. Create natural, flowing content."
    )
    return "\n\n".join(sections)


def compose_user_prompt(template: ComposeTemplate) -> str:
    label = template.value.replace("-", " ")
    return f"Please generate a {label} based on the provided video transcript context."
