from __future__ import annotations

import asyncio

import pytest

from notescope.server.adapters.files import (
    FileAccessError,
    MetadataError,
    VaultCorpus,
    handle_for,
    parse_metadata,
)


def test_parse_metadata_headings_keep_source_lines():
    content = "---\ntitle: x\n---\n# One\ntext\n### Three ###\n####### not a heading\n"
    meta = parse_metadata(content)
    assert [(h.level, h.text, h.line) for h in meta.headings] == [(1, "One", 3), (3, "Three", 5)]
    assert meta.frontmatter == {"title": "x"}


def test_parse_metadata_skips_fenced_code():
    content = "# Real\n```\n# comment #notatag\n```\nbody #tagged"
    meta = parse_metadata(content)
    assert [h.text for h in meta.headings] == ["Real"]
    assert meta.tags == ["#tagged"]


def test_inline_tags_ignore_urls_numbers_and_code():
    meta = parse_metadata("See https://example.com/#anchor and #idea/sub, #2024 `#code` #todo")
    assert meta.tags == ["#idea/sub", "#todo"]


def test_frontmatter_tags_parsed_with_yaml():
    meta = parse_metadata("---\ntags: [alpha, beta]\n---\nbody")
    assert meta.frontmatter["tags"] == ["alpha", "beta"]


def test_invalid_frontmatter_raises():
    with pytest.raises(MetadataError):
        parse_metadata("---\ntags: [unclosed\n---\nbody")


def test_handle_for_root_and_nested():
    root = handle_for("A.md")
    assert (root.path, root.name, root.parent) == ("A.md", "A.md", None)
    nested = handle_for("/Projects/Sub/B.md")
    assert (nested.path, nested.name, nested.parent, nested.basename) == ("Projects/Sub/B.md", "B.md", "Projects/Sub", "B")


def test_vault_lists_markdown_and_skips_hidden(tmp_path):
    (tmp_path / "A.md").write_text("# A", encoding="utf-8")
    (tmp_path / "notes").mkdir()
    (tmp_path / "notes" / "B.md").write_text("b", encoding="utf-8")
    (tmp_path / "notes" / "image.png").write_bytes(b"\x89PNG")
    (tmp_path / ".obsidian").mkdir()
    (tmp_path / ".obsidian" / "C.md").write_text("hidden", encoding="utf-8")

    corpus = VaultCorpus(tmp_path)

    assert [h.path for h in corpus.list_documents()] == ["A.md", "notes/B.md"]
    assert corpus.exists("notes/B.md")
    assert not corpus.exists("missing.md")
    assert not corpus.exists("../outside.md")


def test_vault_read_and_write_roundtrip(tmp_path):
    (tmp_path / "A.md").write_text("# Title\nbody", encoding="utf-8")
    corpus = VaultCorpus(tmp_path)
    handle = handle_for("A.md")

    assert asyncio.run(corpus.read_text(handle)) == "# Title\nbody"
    assert [h.text for h in asyncio.run(corpus.get_metadata(handle)).headings] == ["Title"]

    asyncio.run(corpus.write_text(handle, "# Renamed\nbody"))
    assert [h.text for h in asyncio.run(corpus.get_metadata(handle)).headings] == ["Renamed"]


def test_vault_rejects_paths_outside_root(tmp_path):
    corpus = VaultCorpus(tmp_path / "vault")
    (tmp_path / "vault").mkdir()
    with pytest.raises(FileAccessError):
        asyncio.run(corpus.read_text(handle_for("../secret.md")))


def test_vault_metadata_for_missing_file_is_none(tmp_path):
    assert asyncio.run(VaultCorpus(tmp_path).get_metadata(handle_for("gone.md"))) is None
