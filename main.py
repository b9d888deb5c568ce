#!/usr/bin/env python3
"""Entry point for the retryable tracker CLI.

Looks up one transaction hash from either side of the Arbitrum bridge and
prints the status of every cross-chain message it created.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from retryable_tracker.config import TrackerConfig
from retryable_tracker.display import outbound_status_display
from retryable_tracker.models import LookupResult
from retryable_tracker.tracker import MessageTracker, QuerySupervisor


def print_result(result: LookupResult) -> None:
    """Print a lookup result for humans."""
    print(f"[{result.receipt_display.alert_level.value}] {result.receipt_display.text}")
    if result.network is not None:
        print(f"  Network: {result.network}")

    for display in result.messages:
        print(f"\n[{display.alert_level.value}] {display.text}")
        print(f"  {display.network}: {display.explorer_link()}")
        if redeem_link := display.redeem_tx_link():
            print(f"  Executed in: {redeem_link}")

    for outbound in result.outbound_messages:
        info = outbound_status_display(outbound)
        print(f"\n[{info.alert_level.value}] {info.text}")
        print(f"  {outbound.message}")


async def main() -> None:
    """Main entry point for the retryable tracker CLI.

    Parses arguments, loads configuration from environment, and runs a
    single supervised lookup.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Arbitrum Retryable Tracker - Check the status of cross-chain messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  INFURA_KEY             - Infura API key for the L1 endpoints
  L1_RPC_URL_<chainid>   - Override an L1 endpoint (e.g. L1_RPC_URL_1)
  L2_RPC_URL_<chainid>   - Override an L2 endpoint (e.g. L2_RPC_URL_42161)
  CONFIRMATION_TIMEOUT   - Seconds to wait for L2 receipts (default: 1)
  REQUEST_DEADLINE       - Seconds allowed for a whole lookup (default: 60)
  SECONDS_PER_BLOCK      - L1 block time used for ETAs (default: 15)
  LOG_LEVEL              - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "tx_hash",
        help="L1 or L2 transaction hash (0x followed by 64 hex characters)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the result as JSON"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Show stack traces on errors and log the network registry"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging("DEBUG" if args.debug else args.log_level)

    try:
        config: TrackerConfig = TrackerConfig.from_env()
        config.log_config()

        tracker = MessageTracker.from_config(config)
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - INFURA_KEY: Infura API key (or set L1_RPC_URL_1 and L1_RPC_URL_5)")
        logger.error("  - CONFIRMATION_TIMEOUT / REQUEST_DEADLINE: positive numbers of seconds")
        sys.exit(1)

    if args.debug:
        tracker.registry.log_registry()

    try:
        result = await QuerySupervisor(tracker).submit(args.tx_hash)

    except TimeoutError:
        logger.error(f"Lookup of {args.tx_hash} did not finish in time")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=args.debug)
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print_result(result)


if __name__ == "__main__":
    # Run the main async function
    asyncio.run(main())
