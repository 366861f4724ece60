#!/usr/bin/env python3
"""Poll the attestation network for pending verifications.

Usage locally:
    python -m scripts.poll_attestations                  # one sweep, then exit
    python -m scripts.poll_attestations --limit 200      # bigger batch
    python -m scripts.poll_attestations --watch 30       # sweep every 30s until Ctrl-C

Each sweep:
    1. polls every pending verification that has an attestation id and
       resolves the ones whose attestation reached a final state
    2. re-dispatches attestation for verifications stuck in pending without
       an attestation id (older than STALE_SUBMISSION_SECONDS)

Safe to run next to the API server: every status change is a
compare-and-set, so a sweep and a webhook never both apply.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from provenance.container import AppContainer
from provenance.logging_config import setup_logging

logger = logging.getLogger("poller")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Poll the attestation network for pending verifications.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Records per sweep (default: POLL_BATCH_SIZE)",
    )
    parser.add_argument(
        "--watch",
        type=float,
        default=None,
        metavar="SECONDS",
        help="Keep sweeping with this interval instead of exiting after one sweep",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )
    return parser.parse_args()


def main():
    args = parse_args()
    setup_logging(json_logs=args.json_logs)

    container = AppContainer()
    container.init_resources()
    orchestrator = container.orchestrator()
    settings = container.settings()

    logger.info("=" * 60)
    logger.info("PROVENANCE VERIFIER - Attestation poll")
    logger.info("  Network:  %s", settings.attestation_api_url)
    logger.info("  Database: %s", settings.database_url)
    logger.info("=" * 60)

    try:
        while True:
            t0 = time.time()
            summary = orchestrator.poll_pending(limit=args.limit)
            # let re-dispatched submissions finish before reporting
            container.dispatcher().join(timeout=settings.attestation_timeout_seconds)
            logger.info(
                "Sweep done in %.1fs: checked=%d verified=%d rejected=%d pending=%d redispatched=%d errors=%d",
                time.time() - t0,
                summary.checked,
                summary.verified,
                summary.rejected,
                summary.still_pending,
                summary.redispatched,
                summary.errors,
            )
            if args.watch is None:
                break
            time.sleep(args.watch)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        container.shutdown_resources()


if __name__ == "__main__":
    main()
