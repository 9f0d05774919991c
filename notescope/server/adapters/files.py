from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol

import yaml

logger = logging.getLogger(__name__)

PAGE_SUFFIX = ".md"

# ATX headings: "## Title" with optional closing hashes.
HEADING_PATTERN = re.compile(r"^(?P<marks>#{1,6})[ \t]+(?P<text>.*?)(?:[ \t]+#+)?[ \t]*$")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")
# Inline #tags must contain at least one non-digit character.
TAG_PATTERN = re.compile(r"(?<![\w#&])#(?P<tag>[\w/-]*[^\W\d][\w/-]*)")
# Match URLs to exclude tags within them
URL_PATTERN = re.compile(r"https?://[^\s<>\"'\]\)]+")
INLINE_CODE_PATTERN = re.compile(r"`[^`\n]*`")


class FileAccessError(RuntimeError):
    pass


class MetadataError(ValueError):
    pass


@dataclass(frozen=True)
class DocumentHandle:
    path: str
    name: str
    parent: Optional[str] = None

    @property
    def basename(self) -> str:
        return Path(self.name).stem


@dataclass(frozen=True)
class HeadingInfo:
    level: int
    text: str
    line: int


@dataclass
class DocumentMetadata:
    frontmatter: dict = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    headings: list[HeadingInfo] = field(default_factory=list)


class Corpus(Protocol):
    def list_documents(self) -> list[DocumentHandle]: ...

    async def read_text(self, handle: DocumentHandle) -> str: ...

    async def get_metadata(self, handle: DocumentHandle) -> Optional[DocumentMetadata]: ...

    def exists(self, path: str) -> bool: ...

    async def write_text(self, handle: DocumentHandle, text: str) -> None: ...


def handle_for(path: str) -> DocumentHandle:
    """Build a handle from a vault-relative posix path."""
    rel = path.strip("/")
    parent = rel.rsplit("/", 1)[0] if "/" in rel else None
    return DocumentHandle(path=rel, name=rel.rsplit("/", 1)[-1], parent=parent)


def split_frontmatter(content: str) -> tuple[dict, int]:
    """Return parsed YAML front matter and the index of the first body line."""
    lines = content.split("\n")
    if not lines or lines[0].rstrip() != "---":
        return {}, 0
    for idx in range(1, len(lines)):
        if lines[idx].rstrip() in ("---", "..."):
            raw = "\n".join(lines[1:idx])
            try:
                data = yaml.safe_load(raw) if raw.strip() else {}
            except yaml.YAMLError as exc:
                raise MetadataError(f"Invalid front matter: {exc}") from exc
            return (data if isinstance(data, dict) else {}), idx + 1
    # An unterminated fence is body text.
    return {}, 0


def _extract_tags(text: str) -> list[str]:
    """Extract #tags from a line, excluding tags that appear within URLs or inline code."""
    text = INLINE_CODE_PATTERN.sub(lambda m: " " * len(m.group(0)), text)
    url_ranges = [(m.start(), m.end()) for m in URL_PATTERN.finditer(text)]
    tags = []
    for match in TAG_PATTERN.finditer(text):
        pos = match.start()
        if any(start <= pos < end for start, end in url_ranges):
            continue
        tags.append(f"#{match.group('tag')}")
    return tags


def parse_metadata(content: str) -> DocumentMetadata:
    """Parse front matter, ATX headings and inline tags from markdown text."""
    frontmatter, body_start = split_frontmatter(content)
    tags: list[str] = []
    headings: list[HeadingInfo] = []
    in_fence = False
    for line_no, line in enumerate(content.split("\n")):
        if line_no < body_start:
            continue
        if FENCE_PATTERN.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        heading = HEADING_PATTERN.match(line)
        if heading:
            text = heading.group("text").strip()
            if text:
                headings.append(HeadingInfo(len(heading.group("marks")), text, line_no))
        tags.extend(_extract_tags(line))
    return DocumentMetadata(frontmatter=frontmatter, tags=tags, headings=headings)


class VaultCorpus:
    """Markdown files under a vault directory, addressed by vault-relative posix paths."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser().resolve()
        self._metadata_cache: dict[str, tuple[float, DocumentMetadata]] = {}

    def _resolve(self, relative_path: str) -> Path:
        if not relative_path:
            raise FileAccessError("Path must not be empty")
        target = (self.root / relative_path.lstrip("/")).resolve()
        if self.root not in target.parents:
            raise FileAccessError("Attempted access outside the vault root")
        return target

    def list_documents(self) -> list[DocumentHandle]:
        handles: list[DocumentHandle] = []
        for path in sorted(self.root.rglob(f"*{PAGE_SUFFIX}")):
            rel = path.relative_to(self.root)
            if any(part.startswith(".") for part in rel.parts):
                continue
            if not path.is_file():
                continue
            handles.append(handle_for(rel.as_posix()))
        return handles

    def _read_sync(self, handle: DocumentHandle) -> str:
        target = self._resolve(handle.path)
        try:
            return target.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise FileAccessError(f"{handle.path} is not UTF-8 encoded text.") from exc

    async def read_text(self, handle: DocumentHandle) -> str:
        return await asyncio.to_thread(self._read_sync, handle)

    def _metadata_sync(self, handle: DocumentHandle) -> Optional[DocumentMetadata]:
        try:
            target = self._resolve(handle.path)
            mtime = target.stat().st_mtime
        except (FileAccessError, OSError):
            self._metadata_cache.pop(handle.path, None)
            return None
        cached = self._metadata_cache.get(handle.path)
        if cached and cached[0] == mtime:
            return cached[1]
        metadata = parse_metadata(self._read_sync(handle))
        self._metadata_cache[handle.path] = (mtime, metadata)
        return metadata

    async def get_metadata(self, handle: DocumentHandle) -> Optional[DocumentMetadata]:
        """Return cached metadata for a document, reparsing when the file changed."""
        return await asyncio.to_thread(self._metadata_sync, handle)

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except FileAccessError:
            return False

    def _write_sync(self, handle: DocumentHandle, text: str) -> None:
        target = self._resolve(handle.path)
        if target.suffix.lower() != PAGE_SUFFIX:
            raise FileAccessError(f"Only {PAGE_SUFFIX} pages can be written.")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        self._metadata_cache.pop(handle.path, None)

    async def write_text(self, handle: DocumentHandle, text: str) -> None:
        await asyncio.to_thread(self._write_sync, handle, text)
