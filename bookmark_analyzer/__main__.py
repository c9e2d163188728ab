from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

import yaml
from dotenv import load_dotenv

from bookmark_analyzer.analysis.engine import ContentAnalysisEngine, build_engine
from bookmark_analyzer.config import load_config
from bookmark_analyzer.logging_setup import setup_logging
from bookmark_analyzer.models import ContentItem


logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bookmark-analyzer")
    parser.add_argument(
        "--env",
        default=".env",
        help="Path to .env file (default: .env).",
    )
    parser.add_argument(
        "--no-model",
        action="store_true",
        help="Skip the model server and use rule-based analysis only.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyse a single bookmark.")
    analyze.add_argument("--url", required=True)
    analyze.add_argument("--title", default="")
    analyze.add_argument("--description", default="")
    analyze.add_argument("--tag", action="append", default=[], help="Existing tag (repeatable).")

    batch = sub.add_parser("batch", help="Analyse a JSON or YAML list of bookmarks.")
    batch.add_argument("file", type=Path)

    sub.add_parser("check", help="Re-probe model endpoints and report the connection.")
    sub.add_parser("clear-cache", help="Delete every cached analysis.")
    return parser.parse_args(argv)


def load_items(path: Path) -> list[ContentItem]:
    with path.open("r", encoding="utf-8") as f:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if isinstance(data, dict):
        data = data.get("items") or data.get("bookmarks") or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of bookmarks")
    return [ContentItem.from_dict(d) for d in data if isinstance(d, dict)]


def _dump(data) -> None:
    json.dump(data, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


async def _run(engine: ContentAnalysisEngine, args: argparse.Namespace) -> int:
    try:
        if args.command == "analyze":
            item = ContentItem(
                title=args.title,
                url=args.url,
                description=args.description,
                existing_tags=frozenset(args.tag),
            )
            result = await engine.analyze(item)
            _dump(result.to_dict())
            return 0 if result.analyzed else 1

        if args.command == "batch":
            items = load_items(args.file)

            def progress(done: int, total: int) -> None:
                logger.info("analysed %s/%s", done, total)

            results = await engine.analyze_batch(items, on_progress=progress)
            _dump({url: analysis.to_dict() for url, analysis in results.items()})
            return 0

        if args.command == "check":
            status = await engine.check_connection()
            _dump(
                {
                    "connected": status.connected,
                    "message": status.message,
                    "endpoint": status.endpoint.address if status.endpoint else None,
                    "dialect": status.endpoint.dialect.value if status.endpoint else None,
                }
            )
            return 0 if status.connected else 1

        if args.command == "clear-cache":
            await engine.clear_cache()
            return 0
    finally:
        await engine.aclose()
    return 2


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    env_path = Path(args.env)
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    config = load_config()
    if args.no_model:
        config = replace(config, llm_enabled=False)
    setup_logging(config.log_level, config.log_file)

    engine = build_engine(config)
    raise SystemExit(asyncio.run(_run(engine, args)))


if __name__ == "__main__":
    main()
