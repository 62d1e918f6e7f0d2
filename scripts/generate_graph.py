#!/usr/bin/env python3
"""Message network generator CLI script.

Turns a UTF-8 text file into a typed graph of entities, relationships and
concepts, and writes it as JSON.

Usage:
    python scripts/generate_graph.py generate -i notes.txt -o graph.json
    python scripts/generate_graph.py generate -i notes.txt -o graph.json --use-llm --deep-analysis
    python scripts/generate_graph.py generate -i notes.txt -o graph.json --layout circular --consolidate
    python scripts/generate_graph.py analyze -i notes.txt
    python scripts/generate_graph.py config -o config/default.json
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

from loguru import logger

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from msgnet.errors import InputError, MsgNetError  # noqa: E402
from msgnet.extraction import ExtractionMode, Extractor  # noqa: E402
from msgnet.ingestion import TextNormalizer, decode_text  # noqa: E402
from msgnet.pipeline import GraphPipeline  # noqa: E402
from msgnet.utils.config import Config, load_config  # noqa: E402
from msgnet.utils.logging import setup_logging  # noqa: E402


def read_input(path: Path) -> str:
    """Read and strictly decode the input file.

    Raises:
        InputError: If the file is missing, unreadable or not valid UTF-8
    """
    try:
        data = path.read_bytes()
    except FileNotFoundError as exc:
        raise InputError(f"Input file not found: {path}") from exc
    except OSError as exc:
        raise InputError(f"Cannot read input file: {path}", {"error": str(exc)}) from exc
    return decode_text(data)


def write_atomic(path: Path, content: str) -> None:
    """Write through a temporary file in the target directory, then rename into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def build_config(args: argparse.Namespace) -> Config:
    """Load the configuration file (if any) and apply command-line overrides."""
    config = load_config(args.config) if args.config else load_config()
    setup_logging(config.logging, verbose=args.verbose)

    if getattr(args, "use_llm", False):
        config.extraction.use_llm = True
    if getattr(args, "llm_model", None):
        config.extraction.llm_model = args.llm_model
    if getattr(args, "llm_endpoint", None):
        config.extraction.llm_endpoint = args.llm_endpoint
    if getattr(args, "layout", None):
        config.layout.algorithm = args.layout
    if getattr(args, "consolidate", False):
        config.graph.consolidation = "consolidated"
    if getattr(args, "no_remove_stopwords", False):
        config.text_processing.remove_stopwords = False
    if getattr(args, "stopwords_file", None):
        config.text_processing.stopwords_file = str(args.stopwords_file)
    return config


def cmd_generate(args: argparse.Namespace) -> int:
    config = build_config(args)
    text = read_input(args.input)

    pipeline = GraphPipeline(config)
    result = pipeline.run(text, deep=args.deep_analysis)

    write_atomic(args.output, result.graph.model_dump_json(indent=2))
    logger.info(
        "Wrote graph to {}",
        args.output,
        nodes=len(result.graph.nodes),
        edges=len(result.graph.edges),
        warnings=len(result.warnings),
    )
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    config = build_config(args)
    text = read_input(args.input)

    document = TextNormalizer(config.text_processing).process(text)
    extraction, warnings = Extractor(config).extract(document.windows, ExtractionMode.STANDARD)

    print("Text analysis")
    print(f"  characters:       {len(document.text)}")
    print(f"  words (working):  {document.word_count}")
    print(f"  sentences:        {len(document.sentences)}")
    print(f"  windows:          {len(document.windows)}")
    print(f"  stopwords:        {document.stopword_source}")
    print("Extraction preview")
    print(f"  entities:         {len(extraction.entities)}")
    print(f"  relationships:    {len(extraction.relationships)}")
    print(f"  concepts:         {len(extraction.concepts)}")
    print(f"  warnings:         {len(warnings)}")

    top = sorted(extraction.entities, key=lambda e: (-e.confidence, e.normalized))[:10]
    for entity in top:
        print(f"  - {entity.text} ({entity.entity_type.value}, {entity.confidence:.2f})")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    write_atomic(args.output, json.dumps(Config().model_dump(mode="json"), indent=2) + "\n")
    logger.info(f"Wrote default configuration to {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate entity/relationship/concept graphs from text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Build a graph and write it as JSON")
    generate.add_argument("--input", "-i", type=Path, required=True, help="UTF-8 input text file")
    generate.add_argument("--output", "-o", type=Path, required=True, help="Output JSON path")
    generate.add_argument("--config", "-c", type=Path, default=None, help="YAML/JSON config file")
    generate.add_argument("--use-llm", action="store_true", help="Enable LLM-assisted extraction")
    generate.add_argument(
        "--deep-analysis",
        action="store_true",
        help="Run the multi-phase deep analysis (requires --use-llm or extraction.use_llm)",
    )
    generate.add_argument("--llm-model", default=None, help="Model name (default: llama3.2)")
    generate.add_argument("--llm-endpoint", default=None, help="OpenAI-compatible base URL")
    generate.add_argument(
        "--layout", choices=["hierarchical", "force", "circular"], default=None, help="Layout algorithm"
    )
    generate.add_argument(
        "--consolidate", action="store_true", help="Merge nodes that share a normalized label"
    )
    generate.add_argument(
        "--no-remove-stopwords", action="store_true", help="Keep stopwords in the working text"
    )
    generate.add_argument("--stopwords-file", type=Path, default=None, help="Custom stopwords file")
    generate.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    generate.set_defaults(func=cmd_generate)

    analyze = subparsers.add_parser("analyze", help="Print text statistics and an extraction preview")
    analyze.add_argument("--input", "-i", type=Path, required=True, help="UTF-8 input text file")
    analyze.add_argument("--config", "-c", type=Path, default=None, help="YAML/JSON config file")
    analyze.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    analyze.set_defaults(func=cmd_analyze)

    config = subparsers.add_parser("config", help="Write the default configuration as JSON")
    config.add_argument("--output", "-o", type=Path, required=True, help="Output path")
    config.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    config.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        return args.func(args)
    except MsgNetError as exc:
        logger.debug("Command failed", error_type=type(exc).__name__)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
