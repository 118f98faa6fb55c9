"""Operator CLI for MetroCircuit ingestion and querying.

Usage::

    python -m metrocircuit.cli sync [--folder drawings/line2]
    python -m metrocircuit.cli process --document <id>
    python -m metrocircuit.cli embed --document <id>
    python -m metrocircuit.cli status --document <id>
    python -m metrocircuit.cli query "What feeds DB-2?" --output wiring

Every command goes through the same action dispatcher as the HTTP API, so a
``process`` run behaves exactly like the front-end's polling loop:
``process_document`` once, then ``process_batch`` while the outcome is
``in_progress``.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from metrocircuit.api.dispatcher import ActionDispatcher
from metrocircuit.utils.errors import MetroCircuitError

POLL_DELAY_SECONDS = 1.5
MAX_POLL_ITERATIONS = 200


async def drive_processing(
    dispatcher: ActionDispatcher,
    document_id: str,
    *,
    delay: float = POLL_DELAY_SECONDS,
    max_iterations: int = MAX_POLL_ITERATIONS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_progress: Callable[[dict[str, Any]], None] | None = None,
) -> dict[str, Any]:
    """Start processing *document_id* and poll ``process_batch`` until done.

    Returns the last outcome, which is still ``in_progress`` only when
    *max_iterations* ran out.
    """
    result = await dispatcher.dispatch({"action": "process_document", "documentId": document_id})
    if on_progress:
        on_progress(result)

    remaining = max_iterations
    while result.get("status") == "in_progress" and remaining > 0:
        await sleep(delay)
        result = await dispatcher.dispatch({"action": "process_batch", "documentId": document_id})
        if on_progress:
            on_progress(result)
        remaining -= 1
    return result


async def drive_embedding(
    dispatcher: ActionDispatcher,
    document_id: str,
    *,
    delay: float = POLL_DELAY_SECONDS,
    max_iterations: int = MAX_POLL_ITERATIONS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_progress: Callable[[dict[str, Any]], None] | None = None,
) -> dict[str, Any]:
    """Call ``embed_chunks`` until the backfill reports ``complete``.

    Same polling contract as :func:`drive_processing`.
    """
    result = await dispatcher.dispatch({"action": "embed_chunks", "documentId": document_id})
    if on_progress:
        on_progress(result)

    remaining = max_iterations
    while result.get("status") == "in_progress" and remaining > 0:
        await sleep(delay)
        result = await dispatcher.dispatch({"action": "embed_chunks", "documentId": document_id})
        if on_progress:
            on_progress(result)
        remaining -= 1
    return result


def _print_progress(result: dict[str, Any]) -> None:
    print(
        f"  [{result.get('status')}] {result.get('pagesProcessed', 0)}/{result.get('totalPages', 0)} pages, "
        f"{result.get('totalChunks', 0)} chunks  {result.get('message', '')}"
    )


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_sync(args: argparse.Namespace, dispatcher: ActionDispatcher) -> int:
    result = await dispatcher.dispatch({"action": "sync_source", "folderRef": args.folder})
    print(f"Registered {result['created']} new documents")
    for document in result["documents"]:
        print(f"  {document['id']}  {document['name']}")
    return 0


async def _handle_process(args: argparse.Namespace, dispatcher: ActionDispatcher) -> int:
    print(f"Processing document {args.document}")
    result = await drive_processing(dispatcher, args.document, on_progress=_print_progress)
    if result.get("status") == "indexed":
        print(f"\nIndexed {result['totalPages']} pages into {result['totalChunks']} chunks")
        return 0
    print(f"\nProcessing stopped: {result.get('message', result.get('status'))}", file=sys.stderr)
    return 1


async def _handle_embed(args: argparse.Namespace, dispatcher: ActionDispatcher) -> int:
    result = await drive_embedding(
        dispatcher,
        args.document,
        on_progress=lambda r: print(f"  embedded {r['embedded']}, failed {r['failed']}, {r['remaining']} remaining"),
    )
    print(result["message"])
    return 0 if result.get("status") == "complete" else 1


async def _handle_status(args: argparse.Namespace, dispatcher: ActionDispatcher) -> int:
    result = await dispatcher.dispatch({"action": "get_process_status", "documentId": args.document})
    _print_progress(result)
    return 0


async def _handle_query(args: argparse.Namespace, dispatcher: ActionDispatcher) -> int:
    result = await dispatcher.dispatch(
        {
            "action": "query",
            "query": args.question,
            "outputType": args.output,
            "filterPanel": args.panel,
            "filterVoltage": args.voltage,
            "matchCount": args.matches,
            "documentId": args.document,
            "folderId": args.folder,
        }
    )
    if args.json:
        print(json.dumps(result, indent=2))
        return 0
    print(result["answer"])
    print(f"\n({result['matchCount']} matches, {result['searchMode']} search)")
    for match in result["matches"][:5]:
        print(f"  page {match['page_number']}  {match['similarity']:.2f}  {match['panel']}")
    return 0


_HANDLERS: dict[str, Callable[[argparse.Namespace, ActionDispatcher], Awaitable[int]]] = {
    "sync": _handle_sync,
    "process": _handle_process,
    "embed": _handle_embed,
    "status": _handle_status,
    "query": _handle_query,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="metrocircuit",
        description="Ingest metro electrical documents and query them.",
    )
    subparsers = parser.add_subparsers(dest="command")

    sync_parser = subparsers.add_parser("sync", help="Register new files from the source folder")
    sync_parser.add_argument("--folder", default=None, help="Sub-folder of the source folder")

    for name, help_text in (
        ("process", "Ingest a document, polling batch steps until indexed"),
        ("embed", "Backfill embeddings for a document's chunks"),
        ("status", "Show ingestion progress for a document"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--document", required=True, help="Document id")

    query_parser = subparsers.add_parser("query", help="Ask a question")
    query_parser.add_argument("question")
    query_parser.add_argument(
        "--output",
        default="text",
        choices=["text", "wiring", "schematic", "json"],
        help="Answer format",
    )
    query_parser.add_argument("--panel", default="", help="Only chunks tagged with this panel")
    query_parser.add_argument("--voltage", default="", help="Only chunks tagged with this voltage")
    query_parser.add_argument("--matches", type=int, default=8, help="Number of matches")
    query_parser.add_argument("--document", default=None, help="Restrict to one document")
    query_parser.add_argument("--folder", default=None, help="Restrict to one folder")
    query_parser.add_argument("--json", action="store_true", help="Print the raw response")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace) -> int:
    # Deferred: importing main wires providers and configures logging.
    from metrocircuit.main import build_pipeline

    components = build_pipeline()
    await components["row_store"].initialize()
    try:
        return await _HANDLERS[args.command](args, components["dispatcher"])
    except MetroCircuitError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await components["http_client"].aclose()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
