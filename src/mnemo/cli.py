#!/usr/bin/env python3
"""
CLI for the mnemo retrieval engine.

Usage:
    mnemo --help
    mnemo chunk notes.txt --entry-id e-1
    mnemo init-db ~/.mnemo/store.db
    mnemo ask "When did I start running?" --candidates candidates.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import MnemoConfig, load_config
from .core.exceptions import MnemoError
from .core.logging import configure_logging
from .core.types import RetrievalCandidate, parse_datetime
from .providers import build_embedder, build_synthesizer
from .retrieval.chunker import Chunker
from .retrieval.orchestrator import QueryFilters, QueryRequest, RetrievalOrchestrator
from .storage.schema import list_tables, open_database


logger = logging.getLogger(__name__)


def setup_logging(config: MnemoConfig, verbose: bool = False) -> None:
    """Configure logging from config, forcing DEBUG with --verbose."""
    level = logging.DEBUG if verbose else logging.getLevelName(config.logging.level.upper())
    configure_logging(level=level, structured=config.logging.structured)


def cmd_chunk(args: argparse.Namespace, config: MnemoConfig) -> int:
    """Chunk a text file and print the chunks as JSON."""
    text = Path(args.file).read_text(encoding="utf-8")
    chunks = Chunker(config.chunking).chunk_entry(args.entry_id, text)
    print(json.dumps([c.to_dict() for c in chunks], indent=2))
    return 0


def cmd_init_db(args: argparse.Namespace, config: MnemoConfig) -> int:
    """Create a store database with the full schema."""
    conn = open_database(args.path)
    try:
        tables = list_tables(conn)
    finally:
        conn.close()
    print(f"Initialized {args.path}: {', '.join(tables)}")
    return 0


async def _load_candidates(path: Path, config: MnemoConfig, embedder) -> List[RetrievalCandidate]:
    """
    Read candidates from JSON.

    Each item is either a stored candidate {"chunk": {...}, "vector": [...]}
    or a raw entry {"entry_id", "text", "occurred_at"?, "tags"?} that is
    chunked and embedded on the fly.
    """
    with open(path, "r", encoding="utf-8") as f:
        items: List[Dict[str, Any]] = json.load(f)

    chunker = Chunker(config.chunking)
    candidates = []
    for item in items:
        if "chunk" in item:
            candidates.append(RetrievalCandidate.from_dict(item))
            continue

        chunks = chunker.chunk_entry(
            item["entry_id"],
            item["text"],
            occurred_at=parse_datetime(item.get("occurred_at")),
            tags=item.get("tags", ()),
        )
        vectors = await embedder.embed_batch([c.text for c in chunks])
        candidates.extend(RetrievalCandidate(chunk=c, vector=v) for c, v in zip(chunks, vectors))
    return candidates


async def _ask(args: argparse.Namespace, config: MnemoConfig) -> Dict[str, Any]:
    embedder = build_embedder(config.embedding)
    orchestrator = RetrievalOrchestrator(
        embedder,
        synthesizer=build_synthesizer(config.synthesizer),
        mmr_config=config.mmr,
        config=config.retrieval,
    )
    candidates = await _load_candidates(Path(args.candidates), config, embedder)

    filters = None
    if args.tags or args.min_importance is not None:
        filters = QueryFilters(tags=args.tags, min_importance=args.min_importance)

    result = await orchestrator.query(QueryRequest(args.question, filters=filters), candidates)
    return result.to_dict()


def cmd_ask(args: argparse.Namespace, config: MnemoConfig) -> int:
    """Run a retrieval query over candidates from a JSON file."""
    output = asyncio.run(_ask(args, config))

    if args.json:
        print(json.dumps(output, indent=2))
        return 0

    print(f"\nQuestion:   {args.question}")
    print("=" * 50)
    print(f"Answer:     {output['answer'] or '(no synthesizer configured)'}")
    print(f"Confidence: {output['confidence']:.2f}")
    print("\nCitations:")
    for citation in output["citations"]:
        print(
            f"  {citation['entry_id']} [{citation['start']}:{citation['end']}] "
            f"score={citation['score']:.3f}"
        )
    if output["context"]:
        print("\nContext:")
        print(output["context"])
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Local, citation-preserving retrieval over encrypted notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-c", "--config", help="Path to YAML config file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    chunk_parser = subparsers.add_parser("chunk", help="Chunk a text file")
    chunk_parser.add_argument("file", help="UTF-8 text file")
    chunk_parser.add_argument("--entry-id", default="entry", help="Entry id for chunk ids")
    chunk_parser.set_defaults(func=cmd_chunk)

    init_parser = subparsers.add_parser("init-db", help="Create a store database")
    init_parser.add_argument("path", help="SQLite database path")
    init_parser.set_defaults(func=cmd_init_db)

    ask_parser = subparsers.add_parser("ask", help="Ask a question over candidate chunks")
    ask_parser.add_argument("question", help="Question text")
    ask_parser.add_argument("--candidates", required=True, help="JSON file of candidates or entries")
    ask_parser.add_argument("--tags", nargs="+", help="Only use chunks with one of these tags")
    ask_parser.add_argument("--min-importance", type=float, help="Importance floor")
    ask_parser.add_argument("--json", action="store_true", help="Output JSON")
    ask_parser.set_defaults(func=cmd_ask)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
        setup_logging(config, args.verbose)
        return args.func(args, config)
    except (MnemoError, OSError, KeyError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
