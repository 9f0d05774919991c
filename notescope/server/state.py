from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from notescope.app.autocomplete import AutocompleteEngine
from notescope.app.config import SettingsStore, settings_path_for
from notescope.app.indexer import DocumentIndex, ReindexScheduler
from notescope.app.search import WeightedSearchEngine
from notescope.server.adapters.files import VaultCorpus

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS = 20


@dataclass
class VaultState:
    root: Path
    store: SettingsStore
    corpus: VaultCorpus
    index: DocumentIndex
    search: WeightedSearchEngine
    autocomplete: AutocompleteEngine
    scheduler: ReindexScheduler
    notifications: deque = field(default_factory=lambda: deque(maxlen=MAX_NOTIFICATIONS))

    def notify(self, message: str) -> None:
        logger.info("[notice] %s", message)
        self.notifications.append(message)


def open_vault(path: str) -> VaultState:
    """Wire corpus, settings, index and engines for a vault directory."""
    root = Path(path).expanduser().resolve()
    if not root.exists() or not root.is_dir():
        raise ValueError(f"Vault directory does not exist: {root}")
    store = SettingsStore(settings_path_for(root))
    settings = store.load()
    corpus = VaultCorpus(root)
    index = DocumentIndex(corpus, settings)
    state = VaultState(
        root=root,
        store=store,
        corpus=corpus,
        index=index,
        search=WeightedSearchEngine(index, settings),
        autocomplete=AutocompleteEngine(corpus, settings),
        scheduler=ReindexScheduler(index, settings),
    )
    index.notify = state.notify
    return state


class StateManager:
    def __init__(self) -> None:
        self._state: Optional[VaultState] = None

    def set_vault(self, state: VaultState) -> VaultState:
        if self._state is not None:
            self._state.scheduler.stop()
        self._state = state
        return state

    def get(self) -> VaultState:
        if self._state is None:
            raise RuntimeError("Vault is not set. Call /api/vault/select first.")
        return self._state

    def clear(self) -> None:
        if self._state is not None:
            self._state.scheduler.stop()
        self._state = None


vault_state = StateManager()
