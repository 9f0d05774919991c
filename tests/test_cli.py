from __future__ import annotations

import asyncio

import pytest

from notescope.app import main as cli


def test_search_flags_map_to_options():
    args = cli._parse_args(["search", "--vault", "/tmp/v", "--no-content", "--no-quotes", "hello", "world"])
    assert args.command == "search"
    assert args.query == ["hello", "world"]
    assert args.no_content and args.no_quotes
    assert not args.no_file_name


def test_serve_defaults(monkeypatch):
    monkeypatch.delenv("NOTESCOPE_PORT", raising=False)
    monkeypatch.delenv("NOTESCOPE_HOST", raising=False)
    args = cli._parse_args(["serve"])
    assert args.host == "127.0.0.1"
    assert args.port == 8766


def test_edit_takes_vault_and_note():
    args = cli._parse_args(["edit", "--vault", "/tmp/v", "Projects/Plan.md"])
    assert (args.command, args.vault, args.note) == ("edit", "/tmp/v", "Projects/Plan.md")


def test_search_prints_ranked_matches(tmp_path, capsys):
    (tmp_path / "hello.md").write_text("hello there", encoding="utf-8")
    (tmp_path / "other.md").write_text("say hello", encoding="utf-8")
    args = cli._parse_args(["search", "--vault", str(tmp_path), "hello"])

    assert asyncio.run(cli._run_search(args)) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split() == ["13", "hello.md:1"]
    assert "[fileName] hello.md" in lines[1]


def test_search_without_matches_exits_nonzero(tmp_path, capsys):
    (tmp_path / "a.md").write_text("nothing", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        cli.main(["search", "--vault", str(tmp_path), "absent"])
    assert exc.value.code == 1
    assert "No matches." in capsys.readouterr().out


def test_search_missing_vault_reports_error(tmp_path, capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["search", "--vault", str(tmp_path / "missing"), "x"])
    assert exc.value.code == 2
    assert "does not exist" in capsys.readouterr().err
