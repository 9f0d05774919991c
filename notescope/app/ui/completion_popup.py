from __future__ import annotations

import asyncio
import logging
from typing import Coroutine, Optional

from PySide6.QtCore import QEvent, QObject, Qt, QTimer, Signal
from PySide6.QtGui import QKeyEvent, QTextCursor
from PySide6.QtWidgets import QListWidget, QListWidgetItem, QPlainTextEdit

from notescope.app.autocomplete import (
    AutocompleteEngine,
    BlockSuggestion,
    ContentSuggestion,
    HeadingSuggestion,
    Position,
    Suggestion,
)
from notescope.app.config import Settings
from notescope.app.suggestions import AutocompleteController, SuggestionSession

logger = logging.getLogger(__name__)

NEXT_KEYS = (Qt.Key_Down,)
PREVIOUS_KEYS = (Qt.Key_Up,)
CONFIRM_KEYS = (Qt.Key_Return, Qt.Key_Enter, Qt.Key_Tab)
CANCEL_KEYS = (Qt.Key_Escape,)


def _utf16_offset(text: str, index: int) -> int:
    """Convert a Python string index into Qt's UTF-16 code unit offset."""
    prefix = text[:index]
    return len(prefix) + sum(1 for ch in prefix if ord(ch) > 0xFFFF)


def _index_from_utf16(text: str, units: int) -> int:
    count = 0
    for idx, ch in enumerate(text):
        if count >= units:
            return idx
        count += 2 if ord(ch) > 0xFFFF else 1
    return len(text)


class QtEditorAdapter:
    """Editor collaborator over a QPlainTextEdit; columns are Python string indices."""

    def __init__(self, editor: QPlainTextEdit) -> None:
        self.editor = editor

    def _offset(self, pos: Position) -> int:
        block = self.editor.document().findBlockByNumber(pos.line)
        if not block.isValid():
            return max(0, self.editor.document().characterCount() - 1)
        text = block.text()
        return block.position() + _utf16_offset(text, min(pos.ch, len(text)))

    def get_cursor(self) -> Position:
        cursor = self.editor.textCursor()
        block = cursor.block()
        return Position(block.blockNumber(), _index_from_utf16(block.text(), cursor.positionInBlock()))

    def get_line(self, line: int) -> str:
        block = self.editor.document().findBlockByNumber(line)
        return block.text() if block.isValid() else ""

    def replace_range(self, text: str, start: Position, end: Position) -> None:
        cursor = QTextCursor(self.editor.document())
        cursor.setPosition(self._offset(start))
        cursor.setPosition(self._offset(end), QTextCursor.KeepAnchor)
        cursor.insertText(text)
        self.editor.setTextCursor(cursor)

    def coords_at_pos(self, pos: Position) -> Optional[tuple[int, int]]:
        cursor = QTextCursor(self.editor.document())
        cursor.setPosition(self._offset(pos))
        rect = self.editor.cursorRect(cursor)
        point = self.editor.viewport().mapToGlobal(rect.bottomLeft())
        return point.x(), point.y()


def suggestion_label(suggestion: Suggestion) -> str:
    if isinstance(suggestion, ContentSuggestion):
        return f"{suggestion.preview_text}  ({suggestion.name}:{suggestion.line + 1})"
    if isinstance(suggestion, HeadingSuggestion):
        return f"{'#' * suggestion.level} {suggestion.text}  ({suggestion.name})"
    if isinstance(suggestion, BlockSuggestion):
        return f"^{suggestion.block_id} {suggestion.preview_text}  ({suggestion.name})"
    raise TypeError(f"Unknown suggestion type: {type(suggestion).__name__}")


class SuggestionPopup(QListWidget):
    """Suggestion list for an editor; the highlight always mirrors the session's selected_index.

    Edits are fed to the controller after Qt settles the cursor. Searches and
    confirmations run as tasks on the running asyncio loop when there is one,
    otherwise to completion before the popup redraws.
    """

    confirmed = Signal(object)

    def __init__(self, controller: AutocompleteController, adapter: QtEditorAdapter, parent=None) -> None:
        super().__init__(parent)
        self.setWindowFlags(Qt.ToolTip | Qt.FramelessWindowHint)
        self.setAttribute(Qt.WA_ShowWithoutActivating)
        self.setFocusPolicy(Qt.NoFocus)
        self.setUniformItemSizes(True)
        self.controller = controller
        self.adapter = adapter
        self.pending: Optional[asyncio.Future] = None
        self.itemClicked.connect(self._on_item_clicked)
        adapter.editor.installEventFilter(self)
        adapter.editor.textChanged.connect(lambda: QTimer.singleShot(0, self.handle_edit))

    @property
    def session(self) -> SuggestionSession:
        return self.controller.session

    def _schedule(self, coro: Coroutine) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            self.refresh()
            return
        self.pending = loop.create_task(coro)
        self.pending.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.error("Autocomplete task failed", exc_info=task.exception())
        self.refresh()

    def handle_edit(self) -> None:
        self._schedule(self.controller.on_edit(self.adapter))

    async def _confirm(self) -> None:
        suggestion = await self.controller.confirm(self.adapter)
        if suggestion is not None:
            self.confirmed.emit(suggestion)

    def refresh(self) -> None:
        self.clear()
        if not self.session.is_open:
            self.hide()
            return
        for suggestion in self.session.suggestions:
            self.addItem(QListWidgetItem(suggestion_label(suggestion)))
        self.setCurrentRow(self.session.selected_index)
        coords = self.adapter.coords_at_pos(self.session.trigger.start)
        if coords is not None:
            self.move(*coords)
        rows = min(self.count(), 10)
        self.resize(480, max(1, rows) * (self.sizeHintForRow(0) or 20) + 6)
        self.show()

    def handle_key(self, key: int) -> bool:
        """Apply a navigation key through the controller. Returns True when the key was consumed."""
        if not self.session.is_open:
            return False
        if key in NEXT_KEYS:
            self.controller.select_next()
        elif key in PREVIOUS_KEYS:
            self.controller.select_previous()
        elif key in CONFIRM_KEYS:
            self._schedule(self._confirm())
        elif key in CANCEL_KEYS:
            self.controller.cancel()
        else:
            return False
        self.refresh()
        return True

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:  # type: ignore[override]
        if event.type() == QEvent.KeyPress and isinstance(event, QKeyEvent):
            if self.handle_key(event.key()):
                return True
        return super().eventFilter(obj, event)

    def _on_item_clicked(self, item: QListWidgetItem) -> None:
        row = self.row(item)
        if not self.session.is_open or row < 0:
            return
        self.session.selected_index = row
        self.handle_key(Qt.Key_Return)


def attach_autocomplete(editor: QPlainTextEdit, engine: AutocompleteEngine, settings: Settings) -> SuggestionPopup:
    """Wire @@ autocomplete onto an editor widget."""
    controller = AutocompleteController(engine, settings)
    return SuggestionPopup(controller, QtEditorAdapter(editor))
