from __future__ import annotations

import logging
from typing import Optional, Protocol

from notescope.app.autocomplete import (
    AutocompleteEngine,
    BlockSuggestion,
    Position,
    Suggestion,
    TriggerEvent,
    detect_trigger,
    ensure_block_anchor,
    insertion_text,
    query_is_valid,
)
from notescope.app.config import Settings
from notescope.server.adapters.files import FileAccessError

logger = logging.getLogger(__name__)


class Editor(Protocol):
    def get_cursor(self) -> Position: ...

    def get_line(self, line: int) -> str: ...

    def replace_range(self, text: str, start: Position, end: Position) -> None: ...

    def coords_at_pos(self, pos: Position) -> Optional[tuple[int, int]]: ...


class SuggestionSession:
    """Active suggestion list, selection and the trigger span it will replace."""

    def __init__(self) -> None:
        self.trigger: Optional[TriggerEvent] = None
        self.suggestions: list[Suggestion] = []
        self.selected_index = 0

    @property
    def is_open(self) -> bool:
        return self.trigger is not None and bool(self.suggestions)

    @property
    def cursor(self) -> Optional[Position]:
        return self.trigger.cursor if self.trigger else None

    @property
    def selected(self) -> Optional[Suggestion]:
        if not self.is_open:
            return None
        return self.suggestions[self.selected_index]

    def open(self, trigger: TriggerEvent, suggestions: list[Suggestion]) -> None:
        if not suggestions:
            self.close()
            return
        self.trigger = trigger
        self.suggestions = list(suggestions)
        self.selected_index = 0

    def close(self) -> None:
        self.trigger = None
        self.suggestions = []
        self.selected_index = 0

    def select_next(self) -> None:
        if self.is_open:
            self.selected_index = (self.selected_index + 1) % len(self.suggestions)

    def select_previous(self) -> None:
        if self.is_open:
            self.selected_index = (self.selected_index - 1) % len(self.suggestions)

    def confirm(self, editor: Editor) -> Optional[Suggestion]:
        """Replace the trigger span up to the editor's current cursor and close."""
        suggestion = self.selected
        if suggestion is None:
            return None
        editor.replace_range(insertion_text(suggestion), self.trigger.start, editor.get_cursor())
        self.close()
        return suggestion

    def cancel(self) -> None:
        self.close()


class AutocompleteController:
    """Feeds edits through trigger detection and keeps only the newest search result."""

    def __init__(
        self,
        engine: AutocompleteEngine,
        settings: Settings,
        session: Optional[SuggestionSession] = None,
    ) -> None:
        self.engine = engine
        self.settings = settings
        self.session = session or SuggestionSession()
        self.generation = 0

    async def on_edit(self, editor: Editor) -> Optional[list[Suggestion]]:
        self.generation += 1
        generation = self.generation
        if not self.settings.autocomplete_enabled:
            self.session.close()
            return None
        cursor = editor.get_cursor()
        preceding = editor.get_line(cursor.line)[: cursor.ch]
        event = detect_trigger(preceding, cursor)
        if event is None:
            self.session.close()
            return None
        if not query_is_valid(event.query, self.settings):
            return None
        suggestions = await self.engine.search(event.kind, event.query)
        if generation != self.generation:
            logger.debug("Dropping stale %s results for %r", event.kind.value, event.query)
            return None
        self.session.open(event, suggestions)
        return suggestions

    def select_next(self) -> None:
        self.session.select_next()

    def select_previous(self) -> None:
        self.session.select_previous()

    def cancel(self) -> None:
        # Searches still in flight must not reopen the popup.
        self.generation += 1
        self.session.cancel()

    async def confirm(self, editor: Editor) -> Optional[Suggestion]:
        self.generation += 1
        suggestion = self.session.confirm(editor)
        if isinstance(suggestion, BlockSuggestion) and self.settings.write_block_anchors:
            try:
                await ensure_block_anchor(self.engine.corpus, suggestion)
            except (OSError, FileAccessError) as exc:
                logger.warning("Could not anchor block in %s: %s", suggestion.path, exc)
        return suggestion
