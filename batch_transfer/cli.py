"""Command-line entrypoint for batch SOL transfers."""

import argparse
import asyncio
import sys
from typing import List, Optional, Union

from loguru import logger

from .batch_config_parser import BatchConfig, BatchConfigError, TransferSheetParser, load_batch_config
from .confirmation_poller import PollingPolicy
from .ledger_rpc import LedgerRpc
from .result_reporter import format_submission_line, print_summary
from .transfer_engine import BatchTransferEngine, graceful_shutdown
from .transfer_models import SubmissionOutcome

COMMANDS = ('run', 'import-sheet')
EXIT_CONFIG_ERROR = 2

LOG_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Replace loguru's default sink with a stderr sink (and optional file sink)"""
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, level="DEBUG", rotation="10 MB", retention=5, enqueue=True)


def sheet_name_arg(value: str) -> Union[str, int]:
    """All-digit values select a sheet by position, anything else by name"""
    return int(value) if value.isdigit() else value


def parse_args(argv: List[str]) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-level", default="INFO", help="stderr log level (default: INFO)")
    common.add_argument("--log-file", help="Also write DEBUG logs to this file")

    parser = argparse.ArgumentParser(
        prog="batch-transfer",
        description="Send SOL transfers in parallel and wait for finality"
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", parents=[common], help="Execute a batch file")
    run.add_argument("config", nargs="?", default="config.yaml", help="Batch YAML file (default: config.yaml)")
    run.add_argument("--max-concurrency", type=int, help="Cap on concurrent RPC tasks per phase")
    run.add_argument("--poll-interval", type=float, help="Seconds between status checks")
    run.add_argument("--max-attempts", type=int, help="Status checks per transaction")
    run.add_argument("--strict", action="store_true", help="Exit 1 unless every transfer is confirmed")

    sheet = sub.add_parser("import-sheet", parents=[common], help="Convert an .xlsx/.csv transfer sheet into a batch file")
    sheet.add_argument("sheet", help="Spreadsheet path")
    sheet.add_argument("--sheet-name", type=sheet_name_arg, default=0, help="Excel sheet name or 0-based index (default: first sheet)")
    sheet.add_argument("--output", default="config.yaml", help="Batch YAML to write")
    sheet.add_argument("--rpc-url", default="https://api.mainnet-beta.solana.com", help="RPC endpoint for the batch file")

    # bare `batch-transfer [config] [options]` means `run`
    argv = list(argv)
    if not argv or argv[0] not in COMMANDS + ('-h', '--help'):
        argv.insert(0, 'run')
    return parser.parse_args(argv)


def apply_overrides(config: BatchConfig, args: argparse.Namespace) -> BatchConfig:
    if args.max_concurrency is not None:
        if args.max_concurrency < 1:
            raise BatchConfigError("--max-concurrency must be at least 1")
        config.max_concurrency = args.max_concurrency

    if args.poll_interval is not None or args.max_attempts is not None:
        try:
            config.polling = PollingPolicy(
                interval_seconds=args.poll_interval if args.poll_interval is not None else config.polling.interval_seconds,
                max_attempts=args.max_attempts if args.max_attempts is not None else config.polling.max_attempts
            )
        except ValueError as e:
            raise BatchConfigError(str(e))
    return config


async def run_batch(config: BatchConfig, rpc: Optional[LedgerRpc] = None) -> int:
    """
    Execute a loaded batch and print per-item lines plus the summary

    Returns:
        Number of transfers that did not end confirmed
    """
    engine = BatchTransferEngine(
        rpc or LedgerRpc(config.rpc_url),
        polling_policy=config.polling,
        max_concurrency=config.max_concurrency
    )

    def print_submissions(submissions: List[SubmissionOutcome]):
        for outcome in submissions:
            print(format_submission_line(outcome))
        print("\nChecking statuses...")

    try:
        print("Sending transfers...")
        result = await engine.run(config.wallets, on_submitted=print_submissions)
    finally:
        await graceful_shutdown(engine)

    print_summary(result)
    return len(config.wallets) - result.confirmed


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, args.log_file)

    if args.command == 'import-sheet':
        try:
            parser = TransferSheetParser(args.sheet, sheet_name=args.sheet_name)
            output = parser.generate_yaml(args.output, rpc_url=args.rpc_url)
        except BatchConfigError as e:
            logger.error(f"✗ {e}")
            return EXIT_CONFIG_ERROR
        print(f"Wrote {output}")
        return 0

    try:
        config = apply_overrides(load_batch_config(args.config), args)
    except BatchConfigError as e:
        logger.error(f"✗ {e}")
        return EXIT_CONFIG_ERROR

    not_confirmed = asyncio.run(run_batch(config))
    if args.strict and not_confirmed:
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
