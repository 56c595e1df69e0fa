"""Entry point for the RAG LLM server."""

import argparse
import json
import os
import sys

import uvicorn

from .config import get_settings
from .db import PostgresDatabase
from .errors import RAGError
from .logger import logger


def _serve(args) -> int:
    if args.metadata_store:
        os.environ["METADATA_STORE"] = args.metadata_store
    if args.vector_store:
        os.environ["VECTOR_STORE"] = args.vector_store
    if args.ocr:
        os.environ["OCR_ENABLED"] = "true"

    from .server import app

    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _migrate(args) -> int:
    with PostgresDatabase(get_settings().database_url) as database:
        applied = database.run_migrations(args.migrations_dir)
    print(f"Applied {applied} migration files from {args.migrations_dir}")
    return 0


def _reconcile(args) -> int:
    from .rag import PgDocumentStore, PgVectorStore, find_orphaned_document_ids

    settings = get_settings()
    with PostgresDatabase(settings.database_url) as database:
        vector_store = PgVectorStore(database, settings.vector_table, settings.vector_dimension)
        orphaned = find_orphaned_document_ids(vector_store, PgDocumentStore(database))
    print(json.dumps(sorted(orphaned), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rag-llm-server", description="RAG LLM server")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument(
        "--metadata-store",
        choices=["postgres", "memory"],
        default=None,
        help="Metadata store backend. Overrides METADATA_STORE env var.",
    )
    serve.add_argument(
        "--vector-store",
        choices=["pgvector", "memory"],
        default=None,
        help="Vector store backend. Overrides VECTOR_STORE env var.",
    )
    serve.add_argument(
        "--ocr",
        action="store_true",
        help="Run Tesseract on pages without a text layer. Overrides OCR_ENABLED env var.",
    )
    serve.set_defaults(handler=_serve)

    migrate = subparsers.add_parser("migrate", help="Apply *.up.sql migrations")
    migrate.add_argument(
        "--migrations-dir",
        default="migrations",
        help="Directory containing migration files (default: ./migrations)",
    )
    migrate.set_defaults(handler=_migrate)

    reconcile = subparsers.add_parser(
        "reconcile", help="Report document ids that have vectors but no active metadata"
    )
    reconcile.set_defaults(handler=_reconcile)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except RAGError as e:
        logger.error("command failed", command=args.command, code=e.code, error=e.message)
        print(f"error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
