#!/usr/bin/env python3
"""
Refresh Engine Watch Script
===========================

Standalone script that runs the overlay engine against the mock data
source and reports what it does.

This script:
    1. Builds store, reconciler, animation loops and scheduler
    2. Runs timed refreshes for a configurable duration
    3. Logs engine stats at a fixed interval
    4. Optionally streams one recommendation and prints each partial
    5. Reports a final summary

Usage:
    python scripts/watch_refresh.py --duration 60 --interval 5
    python scripts/watch_refresh.py --seed 7 --recommend
"""

import argparse
import asyncio
import logging
import os
import random
import sys
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from roadwatch.animation import AnimationLoopManager
from roadwatch.datasource import MockDataSource
from roadwatch.models import CongestionLevel, RouteQuery
from roadwatch.overlay import InMemoryMapSession, OverlayReconciler
from roadwatch.recommendation import RecommendationService
from roadwatch.scheduler import RefreshScheduler, Regenerator
from roadwatch.store import EntityStore


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def run_watch(
    duration: int,
    interval: int,
    report_interval: int,
    seed: int,
    recommend: bool,
) -> dict:
    """
    Run the engine and report on it.

    Args:
        duration: Run time in seconds
        interval: Refresh interval in seconds
        report_interval: Seconds between progress reports
        seed: Random seed (None for nondeterministic)
        recommend: Also stream one recommendation

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info("Roadwatch Refresh Watch")
    logger.info("=" * 60)
    logger.info(f"Duration: {duration} seconds")
    logger.info(f"Refresh interval: {interval} seconds")
    logger.info(f"Seed: {seed}")
    logger.info("=" * 60)

    rng = random.Random(seed)
    session = InMemoryMapSession()
    store = EntityStore()
    source = MockDataSource(chunk_delay_seconds=0.02)

    reconciler = OverlayReconciler(session, store)
    animation = AnimationLoopManager(store, reconciler, session, rng=rng)
    reconciler.set_position_resolver(animation)

    scheduler = RefreshScheduler(store, source, Regenerator(rng=rng), interval_seconds=interval)
    scheduler.subscribe(reconciler.rebuild)
    scheduler.subscribe(animation.sync)

    await scheduler.refresh()
    scheduler.start()

    if recommend:
        service = RecommendationService(source)
        query = RouteQuery(
            origin="Taiyuan Railway Station",
            destination="Wuyi Square",
            congestion_level=CongestionLevel.HIGH,
        )
        result = await service.recommend(
            query,
            on_partial=lambda draft: logger.info(f"  partial: {draft.to_wire()}"),
        )
        logger.info(f"Recommendation ({result.source.value}): {result.draft.to_wire()}")

    start_time = time.time()

    try:
        while time.time() - start_time < duration:
            await asyncio.sleep(report_interval)

            counts = store.snapshot().counts()
            logger.info("-" * 40)
            logger.info(f"Progress Report (elapsed: {time.time() - start_time:.0f}s)")
            logger.info(f"  Ticks: {scheduler.state.tick_count}")
            logger.info(f"  Countdown: {scheduler.state.countdown}")
            logger.info(f"  Dropped: {scheduler.metrics.ticks_dropped}")
            logger.info(f"  Entities: {counts}")
            logger.info(f"  Overlays attached: {len(session)}")
            logger.info(f"  Animation loops: {animation.loop_counts()}")
            logger.info(f"  Animation frames: {animation.frames}")

    except KeyboardInterrupt:
        logger.info("Watch interrupted by user")
    finally:
        await scheduler.stop()
        animation.dispose()
        reconciler.clear()
        await source.close()

    total_time = time.time() - start_time

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Refreshes completed: {scheduler.metrics.ticks_completed}")
    logger.info(f"Ticks dropped: {scheduler.metrics.ticks_dropped}")
    logger.info(f"Fetch failures: {scheduler.metrics.fetch_failures}")
    logger.info(f"Animation frames: {animation.frames}")
    logger.info(f"Overlays left attached: {len(session)}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "ticks": scheduler.metrics.ticks_completed,
        "dropped": scheduler.metrics.ticks_dropped,
        "failures": scheduler.metrics.fetch_failures,
        "frames": animation.frames,
        "leaked_overlays": len(session),
    }


def main():
    parser = argparse.ArgumentParser(
        description="Run the Roadwatch refresh engine against mock data"
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=60,
        help="Run time in seconds (default: 60)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=5,
        help="Refresh interval in seconds (default: 5)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for a reproducible run",
    )
    parser.add_argument(
        "--recommend",
        action="store_true",
        help="Stream one recommendation before watching",
    )

    args = parser.parse_args()

    result = asyncio.run(run_watch(
        duration=args.duration,
        interval=args.interval,
        report_interval=args.report_interval,
        seed=args.seed,
        recommend=args.recommend,
    ))

    sys.exit(0 if result["ticks"] > 0 and result["leaked_overlays"] == 0 else 1)


if __name__ == "__main__":
    main()
