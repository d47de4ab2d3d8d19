"""Subcommands for uploading documents, inspecting them and asking questions.

Usage::

    python -m docurag.cli upload report.pdf --owner alice
    python -m docurag.cli list --owner alice
    python -m docurag.cli status <document-id>
    python -m docurag.cli chunks <document-id>
    python -m docurag.cli delete <document-id>
    python -m docurag.cli ask "Who signed the agreement?" --user alice --stream
    python -m docurag.cli history --user alice
    python -m docurag.cli clear-history --user alice
    python -m docurag.cli health

Every handler returns a process exit code: 0 on success, 1 when the
operation failed.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from docurag.config.loader import load_settings
from docurag.utils.errors import DocuRagError
from docurag.utils.logging import configure_logging

_DEFAULT_USER = "default-user"

_SUFFIX_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: {path} is not a file", file=sys.stderr)
        return 1
    mime_type = args.mime_type or _SUFFIX_MIME_TYPES.get(path.suffix.lower())
    if mime_type is None:
        print(f"Error: cannot infer a MIME type for {path.name}; pass --mime-type", file=sys.stderr)
        return 1

    document = await app.documents.upload(
        owner_id=args.owner,
        filename=path.name,
        mime_type=mime_type,
        content=path.read_bytes(),
    )
    print(f"Uploaded {document.filename} as {document.id}")

    await app.worker.join()
    final = await app.documents.get_document(document.id)
    _print_document(final)
    return 0 if final.status.value == "COMPLETED" else 1


async def _handle_status(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    _print_document(await app.documents.get_document(args.document_id))
    return 0


async def _handle_list(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    documents = await app.documents.list_documents(args.owner)
    if not documents:
        print(f"No documents for {args.owner}.")
        return 0
    print(f"{'ID':<34} {'STATUS':<11} {'CHUNKS':>6}  FILENAME")
    for doc in documents:
        print(f"{doc.id:<34} {doc.status.value:<11} {doc.chunk_count:>6}  {doc.filename}")
    return 0


async def _handle_chunks(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    chunks = await app.documents.get_chunks(args.document_id)
    for chunk in chunks:
        body = chunk.content if args.full else _preview(chunk.content)
        print(f"[{chunk.chunk_index}] {chunk.vector_ref}")
        print(f"    {body}")
    print(f"\n{len(chunks)} chunk(s)")
    return 0


async def _handle_delete(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    await app.documents.delete_document(args.document_id)
    print(f"Deleted {args.document_id}")
    return 0


async def _handle_ask(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    if not args.stream and not args.sse:
        result = await app.rag.answer(args.user, args.query, top_k=args.top_k)
        print(result.response_text)
        _print_sources(result.sources)
        return 0

    stream = await app.rag.stream_answer(args.user, args.query, top_k=args.top_k)
    if args.sse:
        async for event in stream.sse():
            sys.stdout.write(event)
            sys.stdout.flush()
        return 0 if stream.finished and stream.response_text else 1

    async for fragment in stream:
        sys.stdout.write(fragment)
        sys.stdout.flush()
    print()
    _print_sources(stream.sources)
    return 0


async def _handle_history(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    turns = await app.rag.get_history(args.user, limit=args.limit)
    if not turns:
        print(f"No history for {args.user}.")
        return 0
    for turn in turns:
        stamp = turn.created_at.strftime("%Y-%m-%d %H:%M:%S")
        print(f"[{stamp}] {turn.role.value}: {turn.content}")
    return 0


async def _handle_clear_history(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    removed = await app.rag.clear_history(args.user)
    print(f"Removed {removed} turn(s) for {args.user}")
    return 0


async def _handle_health(args: argparse.Namespace, app) -> int:  # noqa: ANN001
    llm_ok = await app.llm_provider.validate_credentials()
    embedding_ok = app.embedding_provider.is_available()
    index_ok = app.vector_store.is_available()
    entries = "unknown"
    if index_ok:
        try:
            entries = str(await app.vector_store.count(app.ingestion.collection))
        except DocuRagError as exc:
            index_ok = False
            entries = str(exc)

    rows = [
        ("LLM", app.llm_provider.get_provider_name(), llm_ok, ""),
        ("Embedding", app.embedding_provider.get_provider_name(), embedding_ok, ""),
        ("Index", app.vector_store.get_provider_name(), index_ok, f"entries: {entries}"),
    ]
    for label, name, ok, detail in rows:
        state = "ok" if ok else "unavailable"
        print(f"{label + ':':<11} {name:<20} {state:<12} {detail}".rstrip())
    return 0 if llm_ok and embedding_ok and index_ok else 1


_HANDLERS = {
    "upload": _handle_upload,
    "status": _handle_status,
    "list": _handle_list,
    "chunks": _handle_chunks,
    "delete": _handle_delete,
    "ask": _handle_ask,
    "history": _handle_history,
    "clear-history": _handle_clear_history,
    "health": _handle_health,
}


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _print_document(doc) -> None:  # noqa: ANN001
    print(f"Document {doc.id}")
    print(f"  File:      {doc.filename} ({doc.mime_type}, {doc.size_bytes} bytes)")
    print(f"  Owner:     {doc.owner_id}")
    print(f"  Status:    {doc.status.value}")
    print(f"  Chunks:    {doc.chunk_count}")
    if doc.error:
        print(f"  Error:     {doc.error}")


def _print_sources(sources) -> None:  # noqa: ANN001
    if not sources:
        return
    print("\nSources:")
    for rank, source in enumerate(sources, start=1):
        print(
            f"  {rank}. {source.document_id} #{source.chunk_index} "
            f"({source.score:.2f}) {_preview(source.text, 80)}"
        )


def _preview(text: str, width: int = 120) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= width else flat[: width - 3] + "..."


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m docurag.cli",
        description="Upload documents and ask questions about them.",
    )
    parser.add_argument(
        "--config", default="config/config.yaml", help="YAML config file (default: %(default)s)"
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    upload = subparsers.add_parser("upload", help="Upload and ingest a PDF, text or Markdown file")
    upload.add_argument("file", help="Path to the file")
    upload.add_argument("--owner", default=_DEFAULT_USER, help="Owner id (default: %(default)s)")
    upload.add_argument("--mime-type", dest="mime_type", default=None, help="Override MIME type")

    status = subparsers.add_parser("status", help="Show a document's processing status")
    status.add_argument("document_id")

    list_parser = subparsers.add_parser("list", help="List an owner's documents")
    list_parser.add_argument("--owner", default=_DEFAULT_USER)

    chunks = subparsers.add_parser("chunks", help="Show a document's chunks")
    chunks.add_argument("document_id")
    chunks.add_argument("--full", action="store_true", help="Print whole chunks")

    delete = subparsers.add_parser("delete", help="Delete a document and its vectors")
    delete.add_argument("document_id")

    ask = subparsers.add_parser("ask", help="Ask a question about the uploaded documents")
    ask.add_argument("query")
    ask.add_argument("--user", default=_DEFAULT_USER)
    ask.add_argument("--top-k", dest="top_k", type=int, default=None)
    mode = ask.add_mutually_exclusive_group()
    mode.add_argument("--stream", action="store_true", help="Print the answer as it arrives")
    mode.add_argument("--sse", action="store_true", help="Emit server-sent event lines")

    history = subparsers.add_parser("history", help="Show a user's conversation")
    history.add_argument("--user", default=_DEFAULT_USER)
    history.add_argument("--limit", type=int, default=50)

    clear = subparsers.add_parser("clear-history", help="Delete a user's conversation")
    clear.add_argument("--user", default=_DEFAULT_USER)

    subparsers.add_parser("health", help="Check that the model, embedder and index answer")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _dispatch(args: argparse.Namespace, app_settings) -> int:  # noqa: ANN001
    from docurag.main import build_application

    app = build_application(app_settings)
    # Only the uploading process owns ingestion jobs.
    app.recover_on_startup = args.command == "upload"
    async with app:
        return await _HANDLERS[args.command](args, app)


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    app_settings = load_settings(args.config)
    configure_logging(args.log_level or app_settings.log_level, app_env=app_settings.app_env)

    try:
        return asyncio.run(_dispatch(args, app_settings))
    except DocuRagError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())
