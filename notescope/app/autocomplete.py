"""Trigger detection and the live-document searches behind @@ autocomplete.

Three trigger literals are recognised immediately before the cursor::

    @@@ query   block reference   -> [[Note#^blockid|line text]]
    @@# query   heading reference -> [[Note#Heading|Heading]]
    @@query     content insert    -> the raw line

They share the ``@@`` prefix, so the patterns are tried longest literal first.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from notescope.app.config import Settings, parse_folder_list
from notescope.app.search import tokenize
from notescope.server.adapters.files import (
    Corpus,
    DocumentHandle,
    FileAccessError,
    MetadataError,
)

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 10
PREVIEW_LENGTH = 60

BLOCK_TRIGGER = re.compile(r"@@@\s+(?P<query>[^@]*)$")
HEADING_TRIGGER = re.compile(r"@@#\s+(?P<query>[^@]*)$")
CONTENT_TRIGGER = re.compile(r"(?<!@)@@(?P<query>[^@#][^@]*)$")

CJK_PATTERN = re.compile(r"[\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff]")
LATIN_PATTERN = re.compile(r"[A-Za-z]")
# Trailing " ^id" that marks a referenceable block.
BLOCK_ANCHOR_PATTERN = re.compile(r"\s\^(?P<id>[\w-]+)\s*$")


class TriggerKind(str, Enum):
    BLOCK = "block"
    HEADING = "heading"
    CONTENT = "content"


TRIGGER_PATTERNS = (
    (TriggerKind.BLOCK, BLOCK_TRIGGER),
    (TriggerKind.HEADING, HEADING_TRIGGER),
    (TriggerKind.CONTENT, CONTENT_TRIGGER),
)


@dataclass(frozen=True)
class Position:
    line: int
    ch: int


@dataclass(frozen=True)
class TriggerEvent:
    kind: TriggerKind
    query: str
    span_text: str
    start: Position
    cursor: Position


def detect_trigger(preceding_text: str, cursor: Position) -> Optional[TriggerEvent]:
    """Classify the text before the cursor. First matching pattern wins."""
    for kind, pattern in TRIGGER_PATTERNS:
        match = pattern.search(preceding_text)
        if match is None:
            continue
        span = match.group(0)
        start = Position(cursor.line, max(0, cursor.ch - len(span)))
        return TriggerEvent(kind, match.group("query").strip(), span, start, cursor)
    return None


def query_is_valid(query: str, settings: Settings) -> bool:
    """A query qualifies on enough CJK ideographs or enough Latin letters."""
    cjk = len(CJK_PATTERN.findall(query))
    latin = len(LATIN_PATTERN.findall(query))
    return cjk >= settings.min_chinese_length or latin >= settings.min_english_length


@dataclass(frozen=True)
class ContentSuggestion:
    name: str
    path: str
    preview_text: str
    full_line_text: str
    line: int


@dataclass(frozen=True)
class HeadingSuggestion:
    name: str
    path: str
    text: str
    level: int
    line: int


@dataclass(frozen=True)
class BlockSuggestion:
    name: str
    path: str
    preview_text: str
    full_line_text: str
    line: int
    block_id: str


Suggestion = Union[ContentSuggestion, HeadingSuggestion, BlockSuggestion]


def strip_block_anchor(line_text: str) -> str:
    return BLOCK_ANCHOR_PATTERN.sub("", line_text)


def derive_block_id(line_text: str, line: int) -> str:
    """Short content hash of the whitespace-stripped line followed by its line number."""
    compact = re.sub(r"\s+", "", strip_block_anchor(line_text))
    digest = hashlib.md5(compact.encode("utf-8")).hexdigest()[:6]
    return f"{digest}{line}"


def block_id_for(line_text: str, line: int) -> str:
    """Reuse the anchor already on the line, otherwise derive a new id."""
    existing = BLOCK_ANCHOR_PATTERN.search(line_text)
    if existing:
        return existing.group("id")
    return derive_block_id(line_text, line)


def insertion_text(suggestion: Suggestion) -> str:
    """Text that replaces the trigger span when a suggestion is confirmed."""
    if isinstance(suggestion, ContentSuggestion):
        return suggestion.full_line_text
    if isinstance(suggestion, HeadingSuggestion):
        return f"[[{suggestion.name}#{suggestion.text}|{suggestion.text}]]"
    if isinstance(suggestion, BlockSuggestion):
        return f"[[{suggestion.name}#^{suggestion.block_id}|{strip_block_anchor(suggestion.full_line_text)}]]"
    raise TypeError(f"Unknown suggestion type: {type(suggestion).__name__}")


def _preview(line: str) -> str:
    text = line.strip()
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "…"
    return text


def _is_whole_word(text: str, keyword: str) -> bool:
    start = text.find(keyword)
    while start != -1:
        end = start + len(keyword)
        before_ok = start == 0 or text[start - 1].isspace()
        after_ok = end == len(text) or text[end].isspace()
        if before_ok and after_ok:
            return True
        start = text.find(keyword, start + 1)
    return False


def _rank(scored: list[tuple[int, Suggestion]]) -> list[Suggestion]:
    scored.sort(key=lambda item: item[0], reverse=True)
    return [suggestion for _score, suggestion in scored[:MAX_SUGGESTIONS]]


class AutocompleteEngine:
    """Searches live document state; nothing here reads the main index."""

    def __init__(self, corpus: Corpus, settings: Settings) -> None:
        self.corpus = corpus
        self.settings = settings

    def _documents(self) -> list[DocumentHandle]:
        scope = parse_folder_list(self.settings.autocomplete_folders)
        handles = self.corpus.list_documents()
        if not scope:
            return handles
        return [h for h in handles if any(h.path.startswith(prefix) for prefix in scope)]

    async def _lines(self, handle: DocumentHandle) -> Optional[list[str]]:
        try:
            return (await self.corpus.read_text(handle)).split("\n")
        except (OSError, FileAccessError) as exc:
            logger.warning("Skipping %s during autocomplete: %s", handle.path, exc)
            return None

    async def search(self, kind: TriggerKind, query: str) -> list[Suggestion]:
        if kind is TriggerKind.BLOCK:
            return await self.search_blocks(query)
        if kind is TriggerKind.HEADING:
            return await self.search_headings(query)
        return await self.search_content(query)

    async def search_content(self, query: str) -> list[Suggestion]:
        keywords = tokenize(query)
        if not keywords:
            return []
        scored: list[tuple[int, Suggestion]] = []
        for handle in self._documents():
            lines = await self._lines(handle)
            if lines is None:
                continue
            for line_no, line in enumerate(lines):
                if not line.strip():
                    continue
                lowered = line.lower()
                if not all(keyword in lowered for keyword in keywords):
                    continue
                score = sum(3 if _is_whole_word(lowered, keyword) else 1 for keyword in keywords)
                scored.append(
                    (score, ContentSuggestion(handle.basename, handle.path, _preview(line), line, line_no))
                )
        return _rank(scored)

    async def search_headings(self, query: str) -> list[Suggestion]:
        keywords = tokenize(query)
        if not keywords:
            return []
        scored: list[tuple[int, Suggestion]] = []
        for handle in self._documents():
            try:
                metadata = await self.corpus.get_metadata(handle)
            except (OSError, FileAccessError, MetadataError) as exc:
                logger.warning("Skipping %s during heading lookup: %s", handle.path, exc)
                continue
            if metadata is None:
                continue
            for heading in metadata.headings:
                lowered = heading.text.lower()
                if not all(keyword in lowered for keyword in keywords):
                    continue
                score = max(1, 5 - heading.level) * len(keywords)
                scored.append(
                    (score, HeadingSuggestion(handle.basename, handle.path, heading.text, heading.level, heading.line))
                )
        return _rank(scored)

    async def search_blocks(self, query: str) -> list[Suggestion]:
        keywords = tokenize(query)
        if not keywords:
            return []
        scored: list[tuple[int, Suggestion]] = []
        for handle in self._documents():
            lines = await self._lines(handle)
            if lines is None:
                continue
            for line_no, line in enumerate(lines):
                if not line.strip():
                    continue
                lowered = line.lower()
                if not all(keyword in lowered for keyword in keywords):
                    continue
                suggestion = BlockSuggestion(
                    handle.basename,
                    handle.path,
                    _preview(strip_block_anchor(line)),
                    line,
                    line_no,
                    block_id_for(line, line_no),
                )
                scored.append((len(keywords), suggestion))
        return _rank(scored)


async def ensure_block_anchor(corpus: Corpus, suggestion: BlockSuggestion) -> bool:
    """Append " ^<block_id>" to the source line so the inserted link resolves.

    Returns True when the document was modified. The line is matched by its
    recorded number and text; if the document changed since the search, it is
    left alone.
    """
    handle = next((h for h in corpus.list_documents() if h.path == suggestion.path), None)
    if handle is None:
        return False
    lines = (await corpus.read_text(handle)).split("\n")
    if suggestion.line >= len(lines) or lines[suggestion.line] != suggestion.full_line_text:
        logger.info("Not anchoring %s:%d; line changed", suggestion.path, suggestion.line)
        return False
    if BLOCK_ANCHOR_PATTERN.search(lines[suggestion.line]):
        return False
    lines[suggestion.line] = f"{lines[suggestion.line].rstrip()} ^{suggestion.block_id}"
    await corpus.write_text(handle, "\n".join(lines))
    return True
