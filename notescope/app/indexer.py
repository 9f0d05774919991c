from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from notescope.app.config import Settings, parse_folder_list
from notescope.server.adapters.files import (
    Corpus,
    DocumentHandle,
    DocumentMetadata,
    FileAccessError,
    MetadataError,
    parse_metadata,
)

logger = logging.getLogger(__name__)

ROOT_DIRECTORY = "/"
QUOTE_MARKER = ">"
INDEX_UPDATED_MESSAGE = "Search index updated"

Notifier = Callable[[str], None]


@dataclass(frozen=True)
class Heading:
    text: str
    line: int


@dataclass
class HeadingBuckets:
    h1: list[Heading] = field(default_factory=list)
    h2: list[Heading] = field(default_factory=list)
    h3: list[Heading] = field(default_factory=list)
    # Levels 4, 5 and 6 share one bucket.
    h4: list[Heading] = field(default_factory=list)

    def bucket(self, level: int) -> list[Heading]:
        if level <= 1:
            return self.h1
        if level == 2:
            return self.h2
        if level == 3:
            return self.h3
        return self.h4


@dataclass
class DocumentRecord:
    path: str
    file_name: str
    directory: str
    content: str
    tags: list[str] = field(default_factory=list)
    headings: HeadingBuckets = field(default_factory=HeadingBuckets)
    quotes: list[str] = field(default_factory=list)


def collect_tags(metadata: Optional[DocumentMetadata]) -> list[str]:
    """Union of front-matter tags (string or list) and inline tags."""
    if metadata is None:
        return []
    tags: list[str] = []
    raw = (metadata.frontmatter or {}).get("tags")
    if isinstance(raw, str):
        tags.append(raw)
    elif isinstance(raw, list):
        tags.extend(str(tag) for tag in raw if tag is not None)
    tags.extend(metadata.tags)
    return tags


def extract_headings(metadata: Optional[DocumentMetadata]) -> HeadingBuckets:
    buckets = HeadingBuckets()
    if metadata is None:
        return buckets
    for heading in metadata.headings:
        buckets.bucket(heading.level).append(Heading(heading.text, heading.line))
    return buckets


def extract_quotes(content: str) -> list[str]:
    return [line for line in content.split("\n") if line.startswith(QUOTE_MARKER)]


def is_excluded(path: str, prefixes: Iterable[str]) -> bool:
    return any(prefix and path.startswith(prefix) for prefix in prefixes)


def build_record(handle: DocumentHandle, content: str, metadata: Optional[DocumentMetadata]) -> DocumentRecord:
    return DocumentRecord(
        path=handle.path,
        file_name=handle.name,
        directory=handle.parent or ROOT_DIRECTORY,
        content=content,
        tags=collect_tags(metadata),
        headings=extract_headings(metadata),
        quotes=extract_quotes(content),
    )


class DocumentIndex:
    """Path-keyed map of document records, replaced wholesale on every rebuild."""

    def __init__(self, corpus: Corpus, settings: Settings, notify: Optional[Notifier] = None) -> None:
        self.corpus = corpus
        self.settings = settings
        self.notify = notify
        self._records: dict[str, DocumentRecord] = {}
        self.last_index_time: Optional[float] = None

    @property
    def records(self) -> dict[str, DocumentRecord]:
        """Current snapshot. Callers may keep iterating it across a rebuild."""
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def get(self, path: str) -> Optional[DocumentRecord]:
        return self._records.get(path)

    async def rebuild(self) -> dict[str, DocumentRecord]:
        logger.info("Updating search index...")
        started = time.time()
        excluded = parse_folder_list(self.settings.excluded_folders)
        fresh: dict[str, DocumentRecord] = {}
        for handle in self.corpus.list_documents():
            if is_excluded(handle.path, excluded):
                continue
            try:
                content = await self.corpus.read_text(handle)
                # Headings and tags come from the same text as the content field.
                metadata = parse_metadata(content)
            except (OSError, FileAccessError, MetadataError) as exc:
                logger.warning("Skipping %s while indexing: %s", handle.path, exc)
                continue
            fresh[handle.path] = build_record(handle, content, metadata)
        self._records = fresh
        self.last_index_time = time.time()
        logger.info("Search index updated: %d documents in %.2fs", len(fresh), self.last_index_time - started)
        if self.notify:
            self.notify(INDEX_UPDATED_MESSAGE)
        return fresh


class ReindexScheduler:
    """Runs DocumentIndex.rebuild every cache_update_interval minutes on the running loop."""

    def __init__(self, index: DocumentIndex, settings: Settings) -> None:
        self.index = index
        self.settings = settings
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def interval_seconds(self) -> float:
        return float(self.settings.cache_update_interval) * 60

    def start(self) -> bool:
        """Start the timer if automatic updates are enabled. Returns True when running."""
        self.stop()
        if not self.settings.auto_update_index:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run())
        return True

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def restart(self) -> bool:
        return self.start()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds())
            try:
                # stop() only cancels the wait; a rebuild already underway still publishes.
                await asyncio.shield(self.index.rebuild())
            except Exception:
                logger.exception("Scheduled reindex failed")
