#!/usr/bin/env python3
"""Entry point for the spin wheel client.

Runs a single spin, claim, balance read or identity lookup against the
configured reward wheel deployment, in local (private key) or read-only mode.
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

from spin_wheel.config import AppConfig
from spin_wheel.errors import NoSession, SpinWheelError
from spin_wheel.models import SpinAttempt
from spin_wheel.session import GameSession


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Spin Wheel Client - spin, claim and inspect rewards on the wheel contract",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  WHEEL_GAME_ADDRESS   - Wheel game contract address
  REWARD_TOKENS        - Ordered reward tokens, SYMBOL:0xADDR,SYMBOL:0xADDR,...
  CHAIN_ID             - Chain the contract is deployed on (default: 421614)
  RPC_URL              - RPC endpoint (default: Arbitrum Sepolia public RPC)
  CONFIRMATIONS        - Confirmation depth (default: 1)
  CONFIRMATION_TIMEOUT - Seconds to wait for confirmation (default: 120)
  DIRECTORY_URL        - Identity directory base URL (optional)
  LOCAL_PRIVATE_KEY    - Private key for local mode (required with --local)
  LOG_LEVEL            - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--local",
        action="store_true",
        default=False,
        help="Sign transactions with LOCAL_PRIVATE_KEY"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("spin", help="Spin the wheel and report the rewards")
    claim = commands.add_parser("claim", help="Claim pending rewards of one token")
    claim.add_argument("--token", required=True, help="Reward token symbol")
    commands.add_parser("balances", help="Read reward token balances")
    commands.add_parser("pending", help="Read unclaimed rewards")
    commands.add_parser("claim-all", help="Claim every token with pending rewards")
    commands.add_parser("stats", help="Read spin counters and the daily limit")
    identity = commands.add_parser("identity", help="Resolve a social identity")
    identity.add_argument("--fid", required=True, type=int, help="Numeric user id")
    identity.add_argument("--username", help="Username from the session context")
    identity.add_argument("--display-name", help="Display name from the session context")
    return parser


def report_attempt(attempt: SpinAttempt) -> int:
    """Print a finished attempt and return the process exit code."""
    print(json.dumps(attempt.to_dict(), indent=2))
    if attempt.error is None:
        return 0
    if attempt.error.ambiguous:
        logger.warning(f"Outcome unknown for {attempt.tx_hash}; check its status later instead of retrying")
    return 1


async def run(args: argparse.Namespace, session: GameSession) -> int:
    await session.start()

    match args.command:
        case "spin":
            return report_attempt(await session.orchestrator.spin())
        case "claim":
            return report_attempt(await session.orchestrator.claim(args.token))
        case "balances":
            snapshot = await session.balances()
            print(json.dumps(snapshot.to_dict(), indent=2))
        case "claim-all":
            exit_code = 0
            for attempt in await session.claim_all():
                exit_code = max(exit_code, report_attempt(attempt))
            return exit_code
        case "stats":
            stats = await session.stats()
            print(json.dumps(stats.to_dict(), indent=2))
        case "pending":
            pending = await session.pending()
            print(json.dumps([balance.to_dict() for balance in pending], indent=2))
        case "identity":
            context = {"user": {"fid": args.fid, "username": args.username, "displayName": args.display_name}}
            try:
                record = await session.resolve_identity(context)
            except NoSession:
                print(json.dumps({"anonymous": True}))
            else:
                print(json.dumps(record.to_dict(), indent=2))
    return 0


async def main() -> None:
    """Main entry point for the spin wheel client.

    Raises:
        SystemExit: With a non-zero code on configuration or runtime errors
    """
    args: argparse.Namespace = build_parser().parse_args()

    # Set up logging with specified level
    setup_logging(args.log_level)

    if args.local:
        logger.info("=== Spin Wheel Client Starting (LOCAL MODE) ===")
    else:
        logger.info("=== Spin Wheel Client Starting ===")

    try:
        config: AppConfig = AppConfig.from_env(local_mode=args.local)
        session = GameSession(config)
        exit_code = await run(args, session)

    except SpinWheelError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - WHEEL_GAME_ADDRESS: Wheel game contract address")
        logger.error("  - REWARD_TOKENS: SYMBOL:0xADDRESS pairs, comma separated")
        logger.error("  - RPC_URL: RPC endpoint for the contract's chain")
        if args.local:
            logger.error("  - LOCAL_PRIVATE_KEY: Required for local mode")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    asyncio.run(main())
