from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Sequence

from .config import ConfigManager, GraphRAGConfig
from .context import EngineContext
from .error_codes import ConfigurationError, StoreError, classify_error
from .index_store import IndexStore
from .ingest import load_documents
from .logging_utils import configure_json_logging
from .models import QueryConfig, RAGQuery, SearchStrategy
from .pipeline import GraphRAGPipeline
from .traversal import TraversalFilters


def _dump(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _pipeline(args: argparse.Namespace) -> GraphRAGPipeline:
    config_path = args.config or os.getenv("CONFIG_PATH")
    if config_path:
        manager = ConfigManager(path=Path(config_path))
    else:
        manager = ConfigManager(GraphRAGConfig.from_env())
    return GraphRAGPipeline(EngineContext(config_manager=manager), IndexStore(Path(args.index_dir)))


def _cmd_index(args: argparse.Namespace) -> int:
    loaded = load_documents(args.path)
    for w in loaded.warnings:
        print(f"warning: {w}", file=sys.stderr)
    report = _pipeline(args).index_documents(loaded.documents)
    _dump(
        {
            "indexed": report.indexed,
            "nodes_added": report.nodes_added,
            "edges_added": report.edges_added,
            "version": report.meta.version,
            "document_count": report.meta.document_count,
        }
    )
    return 0


def _cmd_query(args: argparse.Namespace) -> int:
    q = RAGQuery(
        text=args.text,
        strategy=SearchStrategy.parse(args.strategy) if args.strategy else None,
        config=QueryConfig(
            max_results=args.top_k,
            use_reranking=args.rerank,
            use_hyde=not args.no_hyde,
            use_community_detection=not args.no_community,
        ),
    )
    _dump(_pipeline(args).query(q).to_dict())
    return 0


def _cmd_traverse(args: argparse.Namespace) -> int:
    filters = TraversalFilters(
        allowed_relations=args.relation or None,
        max_depth=args.max_depth,
        max_nodes=args.max_nodes,
        max_edges=args.max_edges,
    )
    _dump(_pipeline(args).traverse(args.start, filters, mode=args.mode).to_dict())
    return 0


def _cmd_delete(args: argparse.Namespace) -> int:
    removed = _pipeline(args).delete_documents(args.ids)
    _dump({"removed": removed})
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="graphrag-engine", description="Index documents and query the knowledge graph.")
    ap.add_argument("--index-dir", default=os.getenv("INDEX_DIR", "data/index"), help="Index directory")
    ap.add_argument("--config", default=None, help="JSON config file (defaults to $CONFIG_PATH, else env overrides)")
    ap.add_argument("--log-level", default="WARNING", help="Logging level for JSON logs on stderr")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("index", help="Index a directory (or single file) of documents")
    p.add_argument("path")
    p.set_defaults(func=_cmd_index)

    p = sub.add_parser("query", help="Run a retrieval query")
    p.add_argument("text")
    p.add_argument("--strategy", choices=[s.value for s in SearchStrategy], default=None)
    p.add_argument("--top-k", type=int, default=10)
    p.add_argument("--rerank", action="store_true")
    p.add_argument("--no-hyde", action="store_true")
    p.add_argument("--no-community", action="store_true")
    p.set_defaults(func=_cmd_query)

    p = sub.add_parser("traverse", help="BFS/DFS from a graph node")
    p.add_argument("start")
    p.add_argument("--mode", choices=["bfs", "dfs"], default="bfs")
    p.add_argument("--relation", action="append", help="Allowed relation (repeatable)")
    p.add_argument("--max-depth", type=int, default=None)
    p.add_argument("--max-nodes", type=int, default=None)
    p.add_argument("--max-edges", type=int, default=None)
    p.set_defaults(func=_cmd_traverse)

    p = sub.add_parser("delete", help="Delete documents by id")
    p.add_argument("ids", nargs="+")
    p.set_defaults(func=_cmd_delete)
    return ap


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_json_logging(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    try:
        return int(args.func(args))
    except (ConfigurationError, StoreError, FileNotFoundError) as e:
        coded = classify_error(e=e, stage=args.command)
        print(f"error: [{coded.code}] {coded.message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
