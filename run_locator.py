#!/usr/bin/env python3
"""
CLI for the IP Locator.

Usage:
    python run_locator.py ips.txt
    cat ips.txt | python run_locator.py --provider ipwho
    python run_locator.py ips.txt --json --threshold 1.0 > located.json
    python run_locator.py --cache-stats
    python run_locator.py --clear-cache
    python run_locator.py --evict-expired
"""

import argparse
import json
import logging
import sys

from ip_locator.config import Config
from ip_locator.engine import BatchRun, LocatorEngine
from ip_locator.errors import CacheError, LocatorError, ValidationError
from ip_locator.models import ResolutionOutcome
from ip_locator.providers import AUTO, PROVIDER_CLASSES


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


def print_outcome(outcome: ResolutionOutcome, run: BatchRun):
    """Print one line per IP as soon as it is resolved."""
    if outcome.ok:
        tag = " (cached)" if outcome.from_cache else ""
        print(f"{outcome.ip}{tag}: {outcome.location.summary()}")
    else:
        print(f"{outcome.ip}: ERROR: {outcome.error}")


def print_clusters(run: BatchRun):
    print(f"\n{len(run.clusters)} clusters:")
    for cluster in run.clusters:
        print(f"  ({cluster.lat:.4f}, {cluster.lng:.4f}) x{cluster.count}: {', '.join(cluster.member_ips)}")


def cache_stats(engine: LocatorEngine) -> int:
    try:
        print(f"Cached IPs: {engine.cache.count()}")
    except CacheError as e:
        print(f"Cached IPs: ? ({e})")
        return 1
    return 0


def clear_cache(engine: LocatorEngine) -> int:
    try:
        engine.clear_cache()
    except CacheError as e:
        print(f"Failed to clear cache: {e}")
        return 1
    print("Cache cleared successfully")
    return 0


def evict_expired(engine: LocatorEngine) -> int:
    try:
        deleted = engine.cache.clear_expired()
    except CacheError as e:
        print(f"Failed to evict expired entries: {e}")
        return 1
    print(f"Removed {deleted} expired entries")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Batch IP geolocation")
    parser.add_argument("input", nargs="?", help="File with one IP per line (default: stdin)")
    parser.add_argument("--provider", choices=[AUTO] + sorted(PROVIDER_CLASSES), default=None,
                        help="Provider to use (default: auto fallback)")
    parser.add_argument("--no-cache", action="store_true", help="Bypass cache reads")
    parser.add_argument("--threshold", type=float, default=None, help="Cluster distance threshold (degrees)")
    parser.add_argument("--json", action="store_true", help="Print the whole batch as JSON")
    parser.add_argument("--cache-stats", action="store_true", help="Show number of cached IPs")
    parser.add_argument("--clear-cache", action="store_true", help="Remove all cached IPs")
    parser.add_argument("--evict-expired", action="store_true", help="Delete cache entries past their TTL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    args = parser.parse_args()
    setup_logging(args.verbose)

    config = Config.from_env()
    if args.provider:
        config.provider = args.provider
    if args.threshold is not None:
        config.cluster_threshold = args.threshold
    if args.no_cache:
        config.bypass_cache = True

    engine = LocatorEngine(config)
    try:
        if args.clear_cache:
            sys.exit(clear_cache(engine))
        if args.cache_stats:
            sys.exit(cache_stats(engine))
        if args.evict_expired:
            sys.exit(evict_expired(engine))

        if args.input:
            with open(args.input, "r") as f:
                text = f.read()
        else:
            text = sys.stdin.read()

        try:
            run = engine.locate_batch(text, on_outcome=None if args.json else print_outcome)
        except ValidationError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        except LocatorError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(2)

        if args.json:
            print(json.dumps(run.to_dict(), indent=2))
        else:
            print_clusters(run)
            print(f"\nFound {run.found}/{run.total} ({run.live_calls} API calls, {run.cache_hits} from cache)")
    finally:
        engine.close()


if __name__ == "__main__":
    main()
