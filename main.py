#!/usr/bin/env python3
"""Entry point for the USDC minter service.

Loads configuration from the environment (and a local .env file), builds the
payment monitor and serves the HTTP API with uvicorn. Monitoring is started
and stopped with the application lifespan.
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv


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

import uvicorn

from usdc_minter.api import create_app
from usdc_minter.config import MinterConfig
from usdc_minter.monitor import PaymentMonitor


def main() -> None:
    """Main entry point for the USDC minter.

    Raises:
        SystemExit: On configuration errors
    """
    load_dotenv()

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="USDC Minter - mint tokens automatically for USDC payments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  BASE_RPC_URL          - HTTP RPC endpoint (default: https://mainnet.base.org)
  BASE_WS_URL           - WebSocket endpoint (default: derived from BASE_RPC_URL)
  USDC_PAYMENT_ADDRESS  - Address collecting payments
  CONTRACT_ADDRESS      - Token contract with mintTo
  PRIVATE_KEY           - Owner key used to sign mints
  PAYMENT_AMOUNT        - Required payment in USDC base units (default: 1000000)
  POLLING_INTERVAL      - Seconds between log polls (default: 15)
  REQUEST_TTL           - Seconds before a request expires (default: 1800)
  X402_SCAN_REPORT_URL  - Mint report endpoint (empty disables)
  PORT                  - HTTP port (default: 3000)
  LOG_LEVEL             - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("=== USDC Minter Starting ===")
    logger.info("Loading configuration from environment...")

    try:
        config: MinterConfig = MinterConfig.from_env()
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - BASE_RPC_URL / BASE_WS_URL: RPC endpoints")
        logger.error("  - USDC_PAYMENT_ADDRESS: Address collecting payments")
        logger.error("  - CONTRACT_ADDRESS: Token contract address")
        logger.error("  - PRIVATE_KEY: 64 hex characters, optional 0x prefix")
        logger.error("  - Numeric settings (PAYMENT_AMOUNT, POLLING_INTERVAL, ...) must be integers")
        sys.exit(1)

    config.log_config()

    monitor = PaymentMonitor.from_config(config)
    app = create_app(monitor)

    logger.info(f"Serving on http://{config.server.host}:{config.server.port}")
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
