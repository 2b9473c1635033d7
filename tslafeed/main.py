#!/usr/bin/env python3
"""
Tesla News Feed Aggregator

Entry point for running the pipeline outside the web server.

Usage:
    python -m tslafeed.main --news-only            # Fetch, filter, print top items
    python -m tslafeed.main --news-only --topic tesla
    python -m tslafeed.main --refresh              # Rebuild the cache entry
    python -m tslafeed.main --serve                # Run the API server
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config.settings import settings
from .news.feed_loader import get_feed_sources
from .news.pipeline import NewsPipeline
from .news.relevance import topic_view
from .scheduler import refresh_news_cache
from .store import NewsCache, get_cache_store


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Tesla/TSLA news feed aggregator"
    )

    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Run an authoritative refresh into the configured cache store",
    )

    parser.add_argument(
        "--news-only",
        action="store_true",
        help="Run the pipeline and print the top items without caching",
    )

    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start the API server",
    )

    parser.add_argument(
        "--feeds-file",
        type=Path,
        default=None,
        help=f"Feed list to use (default: {settings.feeds_file.name})",
    )

    parser.add_argument(
        "--topic",
        action="append",
        default=None,
        help="Only show items tagged with this topic (repeatable)",
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Number of items to print with --news-only (default: 20)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for --serve (default: 8000)",
    )

    return parser.parse_args(argv)


async def show_news(pipeline: NewsPipeline, args: argparse.Namespace) -> int:
    result = await pipeline.run()
    items = topic_view(result.items, args.topic) if args.topic else result.items

    print(f"\nFetched {result.fetched} items from {result.report.feeds_ok} feeds "
          f"({result.report.feeds_failed} failed)")
    print(f"{len(items)} items after filtering\n")

    for i, item in enumerate(items[:args.limit]):
        marker = " [video]" if item.is_youtube else ""
        print(f"{i + 1:3}. {item.title[:80]}{marker}")
        print(f"     {item.source} | {item.pub_date} | {', '.join(sorted(item.topics))}")
        print(f"     {item.link}")
    return 0 if items else 1


async def refresh(pipeline: NewsPipeline) -> int:
    summary = await refresh_news_cache(
        pipeline, NewsCache(get_cache_store()), context="CLI News Refresh"
    )
    print(json.dumps(summary, indent=2))
    return 0 if summary["success"] else 1


async def main(args: argparse.Namespace) -> int:
    """Main entry point."""
    sources = get_feed_sources(args.feeds_file) if args.feeds_file else None
    pipeline = NewsPipeline(sources=sources)

    if args.refresh:
        return await refresh(pipeline)
    return await show_news(pipeline, args)


def cli() -> None:
    """CLI entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    args = parse_args()

    if args.serve:
        import uvicorn

        uvicorn.run("tslafeed.app.main:app", host="0.0.0.0", port=args.port)
        return

    sys.exit(asyncio.run(main(args)))


if __name__ == "__main__":
    cli()
