from __future__ import annotations

import os

# Qt widgets in tests render offscreen.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from typing import Optional

import pytest

from notescope.app.autocomplete import Position
from notescope.app.config import Settings
from notescope.server.adapters.files import (
    DocumentHandle,
    DocumentMetadata,
    handle_for,
    parse_metadata,
)


class MemoryCorpus:
    """In-memory vault: path -> markdown text."""

    def __init__(self, documents: Optional[dict[str, str]] = None) -> None:
        self.documents: dict[str, str] = dict(documents or {})
        self.unreadable: set[str] = set()
        self.reads: list[str] = []

    def list_documents(self) -> list[DocumentHandle]:
        return [handle_for(path) for path in self.documents]

    async def read_text(self, handle: DocumentHandle) -> str:
        self.reads.append(handle.path)
        if handle.path in self.unreadable or handle.path not in self.documents:
            raise FileNotFoundError(handle.path)
        return self.documents[handle.path]

    async def get_metadata(self, handle: DocumentHandle) -> Optional[DocumentMetadata]:
        text = self.documents.get(handle.path)
        if text is None:
            return None
        return parse_metadata(text)

    def exists(self, path: str) -> bool:
        return path in self.documents

    async def write_text(self, handle: DocumentHandle, text: str) -> None:
        self.documents[handle.path] = text


class FakeEditor:
    """Editor collaborator over a list of lines."""

    def __init__(self, text: str = "", cursor: Optional[Position] = None) -> None:
        self.lines = text.split("\n")
        last = len(self.lines) - 1
        self.cursor = cursor or Position(last, len(self.lines[last]))

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def type(self, chars: str) -> None:
        line = self.lines[self.cursor.line]
        self.lines[self.cursor.line] = line[: self.cursor.ch] + chars + line[self.cursor.ch :]
        self.cursor = Position(self.cursor.line, self.cursor.ch + len(chars))

    def get_cursor(self) -> Position:
        return self.cursor

    def get_line(self, line: int) -> str:
        return self.lines[line] if 0 <= line < len(self.lines) else ""

    def replace_range(self, text: str, start: Position, end: Position) -> None:
        assert start.line == end.line
        line = self.lines[start.line]
        self.lines[start.line] = line[: start.ch] + text + line[end.ch :]
        self.cursor = Position(start.line, start.ch + len(text))

    def coords_at_pos(self, pos: Position):
        return (pos.ch * 8, pos.line * 16)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def corpus() -> MemoryCorpus:
    return MemoryCorpus()
