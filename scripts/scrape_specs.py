#!/usr/bin/env python3
"""
Spec-only scrape for one or more manufacturers.

Runs the pipeline with listings and review-site enrichment skipped, so only
manufacturer spec claims are collected and reconciled.

Usage:
    python scripts/scrape_specs.py --brand capita --brand jones
    python scripts/scrape_specs.py            # every registered manufacturer
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from boardscout.ingest.base import SourceType
from boardscout.ingest.registry import default_registry
from boardscout.logging_config import setup_logging
from boardscout.pipeline.orchestrator import RunConfig, run_search_pipeline

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scrape manufacturer specs")
    parser.add_argument(
        "--brand",
        action="append",
        default=None,
        help="Manufacturer name (repeatable). Defaults to all manufacturers.",
    )
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)

    manufacturers = None
    if args.brand:
        known = {
            sid.split(":", 1)[1]
            for sid in default_registry.list_sources(SourceType.MANUFACTURER)
        }
        unknown = [brand for brand in args.brand if brand.lower() not in known]
        if unknown:
            print(f"Unknown manufacturer(s): {', '.join(unknown)}")
            print(f"Known: {', '.join(sorted(known))}")
            return 2
        manufacturers = [brand.lower() for brand in args.brand]

    config = RunConfig(
        manufacturers=manufacturers,
        skip_listings=True,
        skip_enrichment=True,
    )
    result = await run_search_pipeline(config)

    print(f"Run {result.run.id}: {result.run.status}")
    print(f"  boards:  {len(result.boards)}")
    print(f"  claims:  {result.claims.as_dict()}")
    print(f"  network: {result.network_requests} requests")
    for error in result.errors:
        print(f"  [{error.kind}] {error.source}: {error.message}")
    return 0


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main()))
