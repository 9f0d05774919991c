from __future__ import annotations

import argparse
import asyncio
import logging
import os
import socket
import sys

import uvicorn
from PySide6.QtWidgets import QApplication, QPlainTextEdit

from notescope.app import config
from notescope.app.search import SearchOptions
from notescope.server import api as api_module
from notescope.app.ui.completion_popup import attach_autocomplete
from notescope.server.adapters.files import handle_for
from notescope.server.state import open_vault


# ============================================================================
# DEBUG CONFIGURATION - Environment Variables
# ============================================================================
# NOTESCOPE_DEBUG     - DEBUG level logging for every notescope module
# UVICORN_LOG_LEVEL   - uvicorn's own log level (default: info)
# NOTESCOPE_HOST/PORT - defaults for `serve`
# NOTESCOPE_VAULT     - vault opened at startup when --vault is not given
# ============================================================================


def _configure_logging() -> None:
    level = logging.DEBUG if config.debug_enabled() else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


def _find_open_port(host: str, preferred: int) -> int:
    """Try preferred port, otherwise fall back to an ephemeral port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, preferred))
            return s.getsockname()[1]
        except OSError:
            pass
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="notescope", description="Weighted search over a markdown vault.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--vault", default=os.getenv("NOTESCOPE_VAULT"), help="Vault to open at startup.")
    serve.add_argument("--host", default=os.getenv("NOTESCOPE_HOST", "127.0.0.1"), help="Interface to bind.")
    serve.add_argument("--port", type=int, default=int(os.getenv("NOTESCOPE_PORT", "8766")), help="Preferred port (0 = auto-select).")

    search = sub.add_parser("search", help="Index a vault once and print ranked results.")
    search.add_argument("--vault", required=True, help="Vault directory.")
    search.add_argument("--limit", type=int, default=20)
    for name in ("file-name", "directory", "tags", "headings", "content", "quotes"):
        search.add_argument(f"--no-{name}", action="store_true", help=f"Skip the {name.replace('-', ' ')} field.")
    search.add_argument("query", nargs="+")

    edit = sub.add_parser("edit", help="Edit one note with @@ autocomplete.")
    edit.add_argument("--vault", required=True, help="Vault directory.")
    edit.add_argument("note", help="Vault-relative path of the note.")
    return parser.parse_args(argv)


def _run_serve(args: argparse.Namespace) -> None:
    api_module.set_startup_vault(args.vault)
    port = _find_open_port(args.host, args.port)
    logging.getLogger(__name__).info("Serving on http://%s:%d", args.host, port)
    uvicorn.run(
        api_module.get_app(),
        host=args.host,
        port=port,
        log_level=os.getenv("UVICORN_LOG_LEVEL", "info"),
    )


async def _run_search(args: argparse.Namespace) -> int:
    state = open_vault(args.vault)
    await state.index.rebuild()
    options = SearchOptions(
        file_name=not args.no_file_name,
        directory=not args.no_directory,
        tags=not args.no_tags,
        headings=not args.no_headings,
        content=not args.no_content,
        quotes=not args.no_quotes,
    )
    results = state.search.search(" ".join(args.query), options)
    if not results:
        print("No matches.")
        return 1
    for result in results[: args.limit]:
        line = result.first_line()
        location = f"{result.document.path}:{line + 1}" if line is not None else result.document.path
        print(f"{result.score:>5}  {location}")
        for match in result.matches[:3]:
            print(f"       [{match.type.value}] {match.matched_text.strip()}")
        if len(result.matches) > 3:
            print(f"       ... and {len(result.matches) - 3} more matches")
    return 0


def _run_edit(args: argparse.Namespace) -> int:
    state = open_vault(args.vault)
    handle = handle_for(args.note)
    text = asyncio.run(state.corpus.read_text(handle)) if state.corpus.exists(handle.path) else ""

    qt_app = QApplication.instance() or QApplication(sys.argv[:1])
    editor = QPlainTextEdit()
    editor.setWindowTitle(f"{handle.name} - notescope")
    editor.setPlainText(text)
    editor.document().setModified(False)
    editor.resize(800, 600)
    popup = attach_autocomplete(editor, state.autocomplete, state.store.settings)
    editor.show()
    rc = qt_app.exec()
    popup.close()

    if editor.document().isModified():
        asyncio.run(state.corpus.write_text(handle, editor.toPlainText()))
        logging.getLogger(__name__).info("Saved %s", handle.path)
    return rc


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    _configure_logging()
    if args.command == "serve":
        _run_serve(args)
        return
    try:
        if args.command == "edit":
            sys.exit(_run_edit(args))
        sys.exit(asyncio.run(_run_search(args)))
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":  # pragma: no cover - manual entry point
    main()
