"""
Module 09C - CLI Main Entry Point

Parses command-line arguments and dispatches to subcommands.

Usage:
    python -m oracle_cli run [--price P] [--json]
    python -m oracle_cli continuous [--interval S] [--price P] [--max-cycles N]
    python -m oracle_cli health [--json]
    python -m oracle_cli proofs [--limit N] [--json]
    python -m oracle_cli config --show

Environment Variables:
    PRIVATE_KEY                 Signer key for on-chain submission
    VERIS_ORACLE_V2             Oracle contract address
    BSC_TESTNET_RPC             Preferred RPC endpoint
    VERIS_CIRCUITS_DIR          Circuit artifact directory
    VERIS_STORAGE_ENDPOINTS     Remote archive gateways ("moniker=host:port,...")
    VERIS_LOG_DIR               Log and submission record directory
    VERIS_LOG_LEVEL             Log level (default: INFO)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import traceback
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Sequence

from pythonjsonlogger import jsonlogger

from core.config import RuntimeConfig
from core.schemas.errors import OracleException


# Exit codes
EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1

LOG_FILE_NAME = "oracle.log"


def json_formatter() -> jsonlogger.JsonFormatter:
    """One JSON object per line: ts, level, logger, msg plus any extra= fields."""
    return jsonlogger.JsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        rename_fields={"asctime": "ts", "name": "logger", "levelname": "level", "message": "msg"},
    )


def daily_file_handler(log_dir: str | Path) -> TimedRotatingFileHandler:
    """<log_dir>/oracle.log, rotated at UTC midnight to oracle.log.YYYY-MM-DD."""
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    return TimedRotatingFileHandler(
        path / LOG_FILE_NAME, when="midnight", utc=True, encoding="utf-8", delay=True
    )


def setup_logging(level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure logging for the CLI."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_dir:
        file_handler = daily_file_handler(log_dir)
        file_handler.setFormatter(json_formatter())
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )


def load_config(path: Path | None) -> RuntimeConfig:
    if path is not None:
        return RuntimeConfig.from_yaml(path).with_env_overrides()
    return RuntimeConfig.from_env()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="veris-oracle",
        description="Veris oracle agent - aggregate, prove and submit prices on-chain.",
    )
    parser.add_argument(
        "--version", action="version", version="%(prog)s 0.1.0"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        default=None,
        help="Path to YAML configuration file (env vars override it)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Print tracebacks on error",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- run command ---
    run_parser = subparsers.add_parser("run", help="Run a single submission cycle")
    run_parser.add_argument(
        "--price", type=float, default=None,
        help="Override price (skips the price sources)",
    )
    run_parser.add_argument("--json", action="store_true", default=False, help="Output as JSON")
    run_parser.set_defaults(func=run_cmd)

    # --- continuous command ---
    loop_parser = subparsers.add_parser("continuous", help="Submit on a fixed interval")
    loop_parser.add_argument(
        "--interval", type=float, default=None,
        help="Seconds between cycles (default: from config)",
    )
    loop_parser.add_argument("--price", type=float, default=None, help="Override price")
    loop_parser.add_argument(
        "--max-cycles", type=int, default=None,
        help="Stop after N cycles (default: run forever)",
    )
    loop_parser.set_defaults(func=continuous_cmd)

    # --- health command ---
    health_parser = subparsers.add_parser("health", help="Check signer, oracle and artifacts")
    health_parser.add_argument("--json", action="store_true", default=False, help="Output as JSON")
    health_parser.set_defaults(func=health_cmd)

    # --- proofs command ---
    proofs_parser = subparsers.add_parser("proofs", help="List archived proofs")
    proofs_parser.add_argument("--limit", type=int, default=20, help="Maximum entries (default: 20)")
    proofs_parser.add_argument("--json", action="store_true", default=False, help="Output as JSON")
    proofs_parser.set_defaults(func=proofs_cmd)

    # --- config command ---
    config_parser = subparsers.add_parser("config", help="Show effective configuration")
    config_parser.add_argument("--show", action="store_true", default=True)
    config_parser.set_defaults(func=config_cmd)

    return parser


def build_agent(config: RuntimeConfig):
    from orchestrator import OracleAgent
    return OracleAgent.from_config(config)


def run_cmd(args: argparse.Namespace) -> int:
    """Handle run command."""
    agent = build_agent(args.runtime_config)
    try:
        record = agent.submit_once(override_price=args.price)
    finally:
        agent.close()

    if args.json:
        print(record.model_dump_json(indent=2))
    else:
        print(f"Price:      ${record.consensus_price:.2f} ({record.valid_sources} sources, spread {record.spread_bps}bps)")
        print(f"Commitment: {record.commitment}")
        print(f"TX:         {record.tx_hash} (block {record.block_number})")
        print(f"Archive:    {record.archive_ref} ({'remote' if record.on_remote else 'local only'})")
        print(f"Elapsed:    {record.elapsed_ms / 1000:.1f}s")
    return EXIT_SUCCESS


def continuous_cmd(args: argparse.Namespace) -> int:
    """Handle continuous command."""
    agent = build_agent(args.runtime_config)
    try:
        stats = agent.run_continuous(
            interval_s=args.interval,
            override_price=args.price,
            max_cycles=args.max_cycles,
        )
    finally:
        agent.close()
    print(f"Cycles: {stats.cycles}  ok: {stats.successes}  failed: {stats.failures}")
    return EXIT_SUCCESS if stats.failures == 0 else EXIT_RUNTIME_ERROR


def health_cmd(args: argparse.Namespace) -> int:
    """Handle health command."""
    agent = build_agent(args.runtime_config)
    try:
        report = agent.health_check()
    finally:
        agent.close()

    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        print(f"Signer:     {report.signer_address}")
        print(f"Balance:    {report.balance if report.balance is not None else '?'}")
        print(f"Endpoint:   {report.healthy_endpoint or 'none reachable'}")
        if report.oracle_price is not None:
            freshness = "fresh" if report.oracle_fresh else "STALE"
            print(f"Oracle:     ${report.oracle_price:.2f}, age {report.oracle_age_s}s ({freshness}), zkVerified={report.zk_verified}")
        for name, present in report.artifacts.items():
            print(f"Artifact:   {name} {'ok' if present else 'MISSING'}")
        for err in report.errors:
            print(f"Error:      {err}")
    return EXIT_SUCCESS if report.ok else EXIT_RUNTIME_ERROR


def proofs_cmd(args: argparse.Namespace) -> int:
    """Handle proofs command."""
    from agents.archive import ProofArchive, build_object_store

    config: RuntimeConfig = args.runtime_config
    store = None
    if config.archive.remote_enabled:
        store = build_object_store(
            config.archive.providers,
            access_key=config.archive.access_key,
            secret_key=config.archive.secret_key,
            secure=config.archive.secure,
        )
    archive = ProofArchive(config.archive.local_dir, bucket=config.archive.bucket, store=store)
    entries = archive.list(limit=args.limit)

    rows = [
        {
            "name": e.object_name,
            "size": e.payload_size,
            "on_remote": e.on_remote,
            "stored_at": e.stored_at.isoformat(),
            "reference": e.reference,
        }
        for e in entries
    ]
    if args.json:
        print(json.dumps(rows, indent=2))
    elif not rows:
        print("No archived proofs")
    else:
        for row in rows:
            where = "remote" if row["on_remote"] else "local"
            print(f"{row['stored_at']}  {row['name']}  {row['size']}B  [{where}]")
    return EXIT_SUCCESS


def config_cmd(args: argparse.Namespace) -> int:
    """Handle config command."""
    print(json.dumps(args.runtime_config.to_dict(), indent=2))
    return EXIT_SUCCESS


def main(argv: Sequence[str] | None = None) -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0=success, 1=error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_RUNTIME_ERROR

    try:
        config = load_config(args.config)
    except (OracleException, OSError, ValueError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    setup_logging(
        level=args.log_level or config.agent.log_level,
        log_dir=config.agent.log_dir,
    )
    args.runtime_config = config

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except OracleException as e:
        if args.debug:
            traceback.print_exc()
        if getattr(args, "json", False):
            print(e.to_error_model().model_dump_json(indent=2))
        print(f"Error [{e.category}/{e.code}]: {e.message}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":
    sys.exit(main())
