"""Citation grammar, tokenizer and renderers.

Generated answers cite passages inline with the token

    [video_id: <ID>, time: <SECONDS>]

where <ID> is one or more of [A-Za-z0-9_-], <SECONDS> is a non-negative
decimal optionally suffixed with "s", and whitespace is allowed after each
":" and ",". Chained citations are separated by spaces.

Scanning is a single left-to-right pass of a small state machine. A token
that breaks the grammar part way through is emitted as plain text.
"""

import math
from collections.abc import Iterator, Mapping
from enum import Enum, auto
from typing import Literal

from pydantic import BaseModel

from src.utils.logging import get_logger

logger = get_logger(__name__)

_OPEN = "[video_id:"
_TIME = "time:"
_ID_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-")
_DIGITS = frozenset("0123456789")


class TextPart(BaseModel):
    """Literal text between (or in place of) citations."""

    kind: Literal["text"] = "text"
    text: str


class CitationToken(BaseModel):
    """One well-formed citation token as it appears in generated text."""

    kind: Literal["token"] = "token"
    video_id: str
    seconds: float
    raw: str


class CitationMarker(BaseModel):
    """A citation resolved to a numbered, linkable reference."""

    kind: Literal["citation"] = "citation"
    number: int
    url: str
    video_title: str
    seconds: float
    source_id: str
    raw: str


class VideoRef(BaseModel):
    """What a citation needs to know about a video: its YouTube id and title."""

    source_id: str
    title: str


class _State(Enum):
    OPEN = auto()  # matching "[video_id:"
    ID_SPACE = auto()
    ID = auto()
    TIME_SPACE = auto()
    TIME = auto()  # matching "time:"
    SECONDS_SPACE = auto()
    INTEGER = auto()
    FRACTION = auto()
    SUFFIX = auto()  # optional "s" or "]"
    CLOSE = auto()  # "]" after the suffix


def _scan_token(text: str, start: int) -> tuple[int, CitationToken] | None:
    """Try to read one citation token beginning at text[start] == "[".

    Returns:
        (end index, token) on success, None if the grammar is broken.
    """
    state = _State.OPEN
    matched = 0
    id_start = id_end = seconds_start = seconds_end = start
    i = start

    while i < len(text):
        ch = text[i]

        if state == _State.OPEN:
            if ch != _OPEN[matched]:
                return None
            matched += 1
            if matched == len(_OPEN):
                state = _State.ID_SPACE
        elif state == _State.ID_SPACE:
            if not ch.isspace():
                if ch not in _ID_CHARS:
                    return None
                state = _State.ID
                id_start = i
        elif state == _State.ID:
            if ch == ",":
                id_end = i
                state = _State.TIME_SPACE
            elif ch not in _ID_CHARS:
                return None
        elif state == _State.TIME_SPACE:
            if not ch.isspace():
                if ch != _TIME[0]:
                    return None
                state = _State.TIME
                matched = 1
        elif state == _State.TIME:
            if ch != _TIME[matched]:
                return None
            matched += 1
            if matched == len(_TIME):
                state = _State.SECONDS_SPACE
        elif state == _State.SECONDS_SPACE:
            if not ch.isspace():
                if ch not in _DIGITS:
                    return None
                state = _State.INTEGER
                seconds_start = i
        elif state == _State.INTEGER:
            if ch == ".":
                state = _State.FRACTION
            elif ch not in _DIGITS:
                seconds_end = i
                state = _State.SUFFIX
                continue
        elif state == _State.FRACTION:
            if ch not in _DIGITS:
                seconds_end = i
                state = _State.SUFFIX
                continue
        elif state == _State.SUFFIX and ch == "s":
            state = _State.CLOSE
        elif ch == "]":
            end = i + 1
            token = CitationToken(
                video_id=text[id_start:id_end],
                seconds=float(text[seconds_start:seconds_end]),
                raw=text[start:end],
            )
            return end, token
        else:
            return None
        i += 1

    return None


def tokenize_citations(text: str) -> list[TextPart | CitationToken]:
    """Split text into literal parts and well-formed citation tokens.

    Runs in time linear in the input: a failed match never spans a "[", so
    scanning resumes at or after the point where the match broke.

    Examples:
        >>> parts = tokenize_citations("Sleep more [video_id: a1, time: 12.5s].")
        >>> [p.kind for p in parts]
        ['text', 'token', 'text']
    """
    parts: list[TextPart | CitationToken] = []
    buffer: list[str] = []
    i = 0

    while i < len(text):
        if text[i] == "[":
            scanned = _scan_token(text, i)
            if scanned is not None:
                if buffer:
                    parts.append(TextPart(text="".join(buffer)))
                    buffer = []
                end, token = scanned
                parts.append(token)
                i = end
                continue
        buffer.append(text[i])
        i += 1

    if buffer:
        parts.append(TextPart(text="".join(buffer)))
    return parts


def citation_url(source_id: str, seconds: float) -> str:
    """Format a YouTube watch URL starting at the floored timestamp.

    Examples:
        >>> citation_url("dQw4w9WgXcQ", 751.9)
        'https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=751s'
    """
    return f"https://www.youtube.com/watch?v={source_id}&t={math.floor(seconds)}s"


def _resolve(
    text: str, videos: Mapping[str, VideoRef]
) -> Iterator[TextPart | CitationMarker]:
    number = 0
    for part in tokenize_citations(text):
        if isinstance(part, TextPart):
            yield part
            continue

        video = videos.get(part.video_id)
        if video is None:
            logger.debug("citation_unresolved", video_id=part.video_id)
            yield TextPart(text=part.raw)
            continue

        number += 1
        yield CitationMarker(
            number=number,
            url=citation_url(video.source_id, part.seconds),
            video_title=video.title,
            seconds=part.seconds,
            source_id=video.source_id,
            raw=part.raw,
        )


def render_citations(
    text: str, videos: Mapping[str, VideoRef]
) -> list[TextPart | CitationMarker]:
    """Resolve citations in one message into numbered markers.

    Markers are numbered from 1 in order of appearance. A citation whose video
    id is not in `videos` stays as its literal token text and takes no number.

    Args:
        text: Generated message text.
        videos: Known videos by internal video id.

    Returns:
        Parts in order; adjacent literal text is merged.
    """
    parts: list[TextPart | CitationMarker] = []
    for part in _resolve(text, videos):
        if isinstance(part, TextPart) and parts and isinstance(parts[-1], TextPart):
            parts[-1] = TextPart(text=parts[-1].text + part.text)
        else:
            parts.append(part)
    return parts


def citations_to_links(
    text: str, videos: Mapping[str, VideoRef], markdown: bool = False
) -> str:
    """Replace resolvable citations with plain links for export.

    Markdown output uses `[[n]](url)`, plain text uses `[n] url`. Unknown
    citations are left unchanged.
    """
    rendered: list[str] = []
    for part in _resolve(text, videos):
        if isinstance(part, TextPart):
            rendered.append(part.text)
        elif markdown:
            rendered.append(f"[[{part.number}]]({part.url})")
        else:
            rendered.append(f"[{part.number}] {part.url}")
    return "".join(rendered)
