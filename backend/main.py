#!/usr/bin/env python3
"""
Main entry point for the Supra threshold agent.

This script loads configuration, initializes the loop controller,
and runs analysis rounds with proper error handling.
"""

import argparse
import dataclasses
import json
import logging
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

from supra_agent.config import Config
from supra_agent.loop_controller import LoopController


__version__ = "1.0.0"


class JSONFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def setup_logging(verbose: bool = False, json_logs: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, set log level to DEBUG, otherwise INFO
        json_logs: If True, enable JSON structured logging
    """
    log_level = logging.DEBUG if verbose else logging.INFO

    Path("logs").mkdir(exist_ok=True)

    if json_logs:
        formatter = JSONFormatter()
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        date_format = "%Y-%m-%d %H:%M:%S"
        formatter = logging.Formatter(log_format, date_format)

    handlers = [
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("logs/agent.log", mode="a")
    ]
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=log_level,
        handlers=handlers
    )

    if json_logs:
        json_handler = logging.FileHandler("logs/agent.json", mode="a")
        json_handler.setFormatter(formatter)
        logging.root.addHandler(json_handler)

    # Reduce noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("openai._base_client").setLevel(logging.WARNING)


def parse_arguments(argv=None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Supra Threshold Agent - expert consensus and on-chain automation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          # Run with default .env file
  python main.py --env .env.testnet       # Run with custom env file
  python main.py --pairs btc_usdt,eth_usdt --once
  python main.py --verbose                # Run with debug logging

Environment Variables:
  SUPRA_ORACLE_API_KEY and SUPRA_PRIVATE_KEY are required.
  OPENAI_API_KEY enables model analysis and the expert panel.

Safety:
  Auto-trading is off unless ENABLE_AUTO_TRADING=true or --auto-trading is given.
        """
    )

    parser.add_argument(
        "--env",
        type=str,
        default=".env",
        help="Path to environment file (default: .env)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Enable JSON structured logging (outputs to logs/agent.json)"
    )

    parser.add_argument(
        "--pairs",
        type=str,
        default=None,
        help="Comma separated trading pairs, overrides TRADING_PAIRS"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single round over the pairs and exit"
    )

    parser.add_argument(
        "--auto-trading",
        action="store_true",
        help="Register automations for approved buy signals"
    )

    parser.add_argument(
        "--no-experts",
        action="store_true",
        help="Skip the expert panel"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Supra Threshold Agent v{__version__}"
    )

    return parser.parse_args(argv)


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line overrides on top of the environment configuration."""
    overrides = {}
    if args.pairs:
        pairs = [p.strip().lower() for p in args.pairs.split(",") if p.strip()]
        if not pairs:
            raise ValueError("--pairs must contain at least one trading pair")
        overrides["trading_pairs"] = pairs
    if args.auto_trading:
        overrides["enable_auto_trading"] = True
    if args.no_experts:
        overrides["enable_experts"] = False
    return dataclasses.replace(config, **overrides) if overrides else config


def main(argv=None) -> int:
    """
    Main entry point for the agent.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = parse_arguments(argv)

    setup_logging(verbose=args.verbose, json_logs=args.json_logs)
    logger = logging.getLogger(__name__)

    logger.info("=" * 80)
    logger.info("SUPRA THRESHOLD AGENT")
    logger.info("=" * 80)

    try:
        logger.info(f"Loading configuration from: {args.env}")

        if args.env != ".env":
            if not Path(args.env).exists():
                logger.error(f"Environment file not found: {args.env}")
                return 1
            load_dotenv(args.env, override=True)

        config = apply_overrides(Config.from_env(), args)
        logger.info("[OK] Configuration loaded successfully")

    except ValueError as e:
        logger.error(f"[ERROR] Configuration error: {e}")
        logger.error("Please check your .env file and ensure all required variables are set.")
        return 1

    if config.enable_auto_trading:
        logger.warning("!" * 80)
        logger.warning("!!! AUTO-TRADING ENABLED !!!")
        logger.warning(f"!!! Approved buy signals register {config.max_investment_per_trade} SUPRA automations !!!")
        logger.warning("!" * 80)

    try:
        logger.info("Initializing loop controller...")
        controller = LoopController(config)
        logger.info("[OK] Loop controller initialized")
    except Exception as e:
        logger.error(f"[ERROR] Failed to initialize loop controller: {e}", exc_info=True)
        return 1

    controller.register_signal_handlers()

    try:
        logger.info("Running startup connectivity tests...")
        if not controller.startup():
            logger.error("[ERROR] Startup tests failed")
            logger.error("Please check your API credentials and network connectivity.")
            return 1
        logger.info("[OK] All startup tests passed")
    except Exception as e:
        logger.error(f"[ERROR] Startup test error: {e}", exc_info=True)
        return 1

    try:
        if args.once:
            results = controller.run_once()
            for pair, result in results.items():
                if result is None:
                    logger.info(f"{pair.upper()}: no result")
                    continue
                task = f", task {result.task_id}" if result.task_id else ""
                logger.info(f"{pair.upper()}: {result.recommendation} ({result.confidence * 100:.0f}%){task}")
            return 0

        logger.info("Starting main loop...")
        logger.info("Press Ctrl+C to stop gracefully")
        logger.info("=" * 80)

        controller.run()

        logger.info("=" * 80)
        logger.info("Agent stopped successfully")
        logger.info("=" * 80)
        return 0

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        controller.shutdown()
        return 0
    except Exception as e:
        logger.error(f"[ERROR] Fatal error in main loop: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
