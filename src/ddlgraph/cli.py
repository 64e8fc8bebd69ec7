"""
Command line entry point.

    ddlgraph manifest.yaml -o sql/demo--1.0.sql --dot demo.dot

Without ``-o`` the script is printed to stdout. Any build error is logged
and the process exits with status 1 without writing anything.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .errors import SqlGraphError
from .export import GraphVizExporter, JSONExporter
from .manifest import load_manifest

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ddlgraph",
        description="Render an extension's SQL entities as one dependency-ordered SQL script",
    )
    parser.add_argument("manifest", help="YAML or JSON entity manifest")
    parser.add_argument("-o", "--output", help="Write the SQL script here instead of stdout")
    parser.add_argument("--dot", help="Also write the dependency graph in Graphviz DOT format")
    parser.add_argument("--json", help="Also write the dependency graph as JSON")
    parser.add_argument(
        "--errors-as-json",
        action="store_true",
        help="Print build errors to stderr as JSON objects",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        sql_graph = load_manifest(args.manifest).build()
        sql = sql_graph.to_sql()
        if args.dot:
            GraphVizExporter.export_to_file(sql_graph, args.dot)
            logger.info("Wrote dependency graph to %s", args.dot)
        if args.json:
            JSONExporter.export_to_file(sql_graph, args.json)
            logger.info("Wrote graph JSON to %s", args.json)
    except SqlGraphError as e:
        if args.errors_as_json:
            print(json.dumps(e.to_dict()), file=sys.stderr)
        logger.error("%s", e)
        return 1

    if args.output:
        sql_graph.to_file(args.output)
    else:
        sys.stdout.write(sql)
    return 0


if __name__ == "__main__":
    sys.exit(main())
