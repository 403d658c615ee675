from __future__ import annotations

import argparse
import json
from pathlib import Path

from training_graph.settings import settings


def _configure_logging() -> None:
    import logging

    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _engine(args: argparse.Namespace):
    from training_graph.graph import create_engine

    return create_engine(args.backend)


def _report(res) -> int:
    if not res.success:
        print(f"error [{res.kind.value if res.kind else 'unknown'}]: {res.error}")
        return 1
    return 0


def cmd_version() -> int:
    from training_graph import __version__

    print(__version__)
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    _configure_logging()
    from pydantic import ValidationError

    from training_graph.graph.ingestion import ProcessingResult

    engine = _engine(args)
    rc = 0
    for path in args.files:
        try:
            result = ProcessingResult.model_validate_json(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            print(f"error [invalid_input]: {path}: {e}")
            rc = 1
            continue
        res = engine.process_document(result)
        if _report(res):
            rc = 1
            continue
        nodes, rels = res.data
        print(f"{result.document_id}: {nodes} nodes, {rels} relationships")

    if args.export:
        rc = rc or _report(engine.export_graph(args.format, args.export))
    return rc


def cmd_export(args: argparse.Namespace) -> int:
    _configure_logging()
    from training_graph.graph import QueryBuilder

    query = None
    if args.type or args.label or args.tag:
        qb = QueryBuilder()
        if args.type:
            qb.of_type(args.type)
        if args.label:
            qb.with_labels(*args.label)
        if args.tag:
            qb.tagged(*args.tag)
        query = qb.build()

    res = _engine(args).export_graph(args.format, args.path, query)
    if _report(res):
        return 1
    print({"nodes": res.data[0], "relationships": res.data[1]})
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    _configure_logging()
    res = _engine(args).import_graph(args.format, args.path, args.merge_strategy)
    if _report(res):
        return 1
    print({"nodes": res.data[0], "relationships": res.data[1]})
    return 0


def cmd_path(args: argparse.Namespace) -> int:
    _configure_logging()
    res = _engine(args).find_shortest_path(args.source, args.target, args.max_depth)
    if _report(res):
        return 1
    sub = res.data
    print(json.dumps({"nodes": sub.node_ids(), "relationships": sub.relationship_ids()}, indent=2))
    return 0


def cmd_communities(args: argparse.Namespace) -> int:
    _configure_logging()
    params = json.loads(args.params) if args.params else None
    res = _engine(args).detect_communities(args.algorithm, params)
    if _report(res):
        return 1
    print(json.dumps(res.data, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tkg")
    p.add_argument("--backend", default=None, help="memory|neo4j (default from TRAINING_GRAPH_GRAPH_BACKEND)")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version").set_defaults(func=lambda _a: cmd_version())

    ingest = sub.add_parser("ingest", help="Ingest ProcessingResult JSON files into the graph")
    ingest.add_argument("files", nargs="+")
    ingest.add_argument("--export", default=None, help="Write the resulting graph to this path")
    ingest.add_argument("--format", default=None, help="json|graphml|cypher (default: from extension)")
    ingest.set_defaults(func=cmd_ingest)

    exp = sub.add_parser("export", help="Export the graph or a filtered part of it")
    exp.add_argument("path")
    exp.add_argument("--format", default=None, help="json|graphml|cypher (default: from extension)")
    exp.add_argument("--type", default=None)
    exp.add_argument("--label", action="append", default=[])
    exp.add_argument("--tag", action="append", default=[])
    exp.set_defaults(func=cmd_export)

    imp = sub.add_parser("import", help="Import a graph file")
    imp.add_argument("path")
    imp.add_argument("--format", default=None)
    imp.add_argument(
        "--merge-strategy",
        default="prefer_higher_confidence",
        help="prefer_subgraph1|prefer_subgraph2|prefer_higher_confidence|merge_properties",
    )
    imp.set_defaults(func=cmd_import)

    path = sub.add_parser("path", help="Shortest path between two nodes")
    path.add_argument("source")
    path.add_argument("target")
    path.add_argument("--max-depth", type=int, default=5)
    path.set_defaults(func=cmd_path)

    com = sub.add_parser(
        "communities",
        help="Community detection (neo4j needs the GDS plugin; the graph is re-projected per call)",
    )
    com.add_argument("--algorithm", default="louvain")
    com.add_argument("--params", default=None, help="JSON object of algorithm parameters")
    com.set_defaults(func=cmd_communities)

    return p


def app() -> None:
    parser = build_parser()
    args = parser.parse_args()
    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    app()
