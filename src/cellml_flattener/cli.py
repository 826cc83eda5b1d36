from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List

from .config import AppConfig, load_config
from .document.loader import DocumentLoader
from .document.writer import write_model
from .errors import CellMLToolError
from .pipeline.compact import compact_model
from .pipeline.flatten import flatten_model
from .report import Report


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with a clean format for terminal output."""
    level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    # stdout may carry the serialized model
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []
    root_logger.addHandler(handler)


def _run(args: argparse.Namespace, cfg: AppConfig) -> int:
    logger = logging.getLogger(__name__)
    report = Report(cfg.report_indent)
    loader = DocumentLoader(http_timeout=cfg.http_timeout)
    try:
        model = loader.load(args.url)
        if args.mode == "model":
            result = flatten_model(model, report=report, initial_value_policy=cfg.initial_value_policy)
        else:
            result = compact_model(model, report=report)
    except CellMLToolError as e:
        logger.error(f"Conversion failed: {e}")
        sys.stderr.write(report.text())
        return 1

    text = write_model(result)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        logger.info(f"Wrote {result.name} to {args.output}")
    else:
        sys.stdout.write(text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cellml-flatten",
        description="Flatten a hierarchical CellML model, or compact its variables",
    )
    sub = p.add_subparsers(dest="mode", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("url", help="Model URL or file path")
    common.add_argument("output", nargs="?", help="Output file (defaults to stdout)")
    common.add_argument("-v", "--verbose", action="store_true", help="Log per-variable detail")

    sub.add_parser("model", parents=[common], help="Flatten imports and hierarchy into one CellML 1.0 model")
    sub.add_parser("variables", parents=[common], help="Compact all variables into a two-component model")
    return p


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        cfg = load_config()
    except ValueError as e:
        parser.error(str(e))
    setup_logging(args.verbose or cfg.verbose)
    return _run(args, cfg)


if __name__ == "__main__":
    sys.exit(main())
