"""Weighted multi-field search over the document index."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from notescope.app.config import Settings
from notescope.app.indexer import DocumentIndex, DocumentRecord, Heading

logger = logging.getLogger(__name__)


class MatchType(str, Enum):
    FILE_NAME = "fileName"
    DIRECTORY = "directory"
    TAG = "tag"
    HEADING1 = "heading1"
    HEADING2 = "heading2"
    HEADING3 = "heading3"
    HEADING4 = "heading4"
    CONTENT = "content"
    QUOTE = "quote"


@dataclass(frozen=True)
class Match:
    type: MatchType
    matched_text: str
    line: Optional[int] = None


@dataclass
class SearchResult:
    document: DocumentRecord
    score: int = 0
    matches: list[Match] = field(default_factory=list)

    def add(self, match: Match, weight: int) -> None:
        self.matches.append(match)
        self.score += weight

    def first_line(self) -> Optional[int]:
        """Line to open the document at: the first match that carries one."""
        for match in self.matches:
            if match.line is not None:
                return match.line
        return None


@dataclass
class SearchOptions:
    file_name: bool = True
    directory: bool = True
    tags: bool = True
    headings: bool = True
    content: bool = True
    quotes: bool = True


def tokenize(query: Optional[str]) -> list[str]:
    """Lowercase and split a query on whitespace; empty tokens are dropped."""
    return (query or "").lower().split()


def line_number_at(lines: list[str], offset: int) -> int:
    """Return the 0-based line containing a character offset of "\\n".join(lines)."""
    line_no = 0
    consumed = 0
    while line_no < len(lines) and consumed + len(lines[line_no]) + 1 <= offset:
        consumed += len(lines[line_no]) + 1
        line_no += 1
    return line_no


class WeightedSearchEngine:
    def __init__(self, index: DocumentIndex, settings: Settings) -> None:
        self.index = index
        self.settings = settings

    def _heading_levels(self) -> tuple[tuple[str, MatchType, int], ...]:
        s = self.settings
        return (
            ("h1", MatchType.HEADING1, s.heading1_weight),
            ("h2", MatchType.HEADING2, s.heading2_weight),
            ("h3", MatchType.HEADING3, s.heading3_weight),
            ("h4", MatchType.HEADING4, s.heading4_weight),
        )

    def search(self, query: str, options: Optional[SearchOptions] = None) -> list[SearchResult]:
        keywords = tokenize(query)
        if not keywords:
            return []
        options = options or SearchOptions()
        corpus = self.index.corpus
        results: list[SearchResult] = []
        # Iterate a snapshot; a rebuild swaps the map rather than mutating it.
        for path, record in list(self.index.records.items()):
            if not corpus.exists(path):
                continue
            result = self._score(record, keywords, options)
            if result.score > 0:
                results.append(result)
        results.sort(key=lambda r: r.score, reverse=True)
        logger.debug("search %r -> %d results", query, len(results))
        return results

    def _score(self, record: DocumentRecord, keywords: list[str], options: SearchOptions) -> SearchResult:
        s = self.settings
        result = SearchResult(document=record)

        if options.file_name:
            name = record.file_name.lower()
            for keyword in keywords:
                if keyword in name:
                    result.add(Match(MatchType.FILE_NAME, record.file_name), s.file_name_weight)

        if options.directory:
            directory = record.directory.lower()
            for keyword in keywords:
                if keyword in directory:
                    result.add(Match(MatchType.DIRECTORY, record.directory), s.directory_weight)

        if options.tags:
            for tag in record.tags:
                tag_text = tag.lower()
                for keyword in keywords:
                    if keyword in tag_text:
                        result.add(Match(MatchType.TAG, tag), s.tag_weight)

        if options.headings:
            for bucket_name, match_type, weight in self._heading_levels():
                bucket: list[Heading] = getattr(record.headings, bucket_name)
                for heading in bucket:
                    text = heading.text.lower()
                    for keyword in keywords:
                        if keyword in text:
                            result.add(Match(match_type, heading.text, heading.line), weight)

        if options.content:
            self._scan_content(record, keywords, result)

        if options.quotes:
            for quote in record.quotes:
                quote_text = quote.lower()
                for keyword in keywords:
                    if keyword in quote_text:
                        result.add(Match(MatchType.QUOTE, quote), s.quote_weight)

        return result

    def _scan_content(self, record: DocumentRecord, keywords: list[str], result: SearchResult) -> None:
        content = record.content.lower()
        lines = record.content.split("\n")
        weight = self.settings.content_weight
        for keyword in keywords:
            start = 0
            while True:
                idx = content.find(keyword, start)
                if idx == -1:
                    break
                line_no = line_number_at(lines, idx)
                line_text = lines[line_no] if line_no < len(lines) else ""
                result.add(Match(MatchType.CONTENT, line_text, line_no), weight)
                start = idx + len(keyword)
