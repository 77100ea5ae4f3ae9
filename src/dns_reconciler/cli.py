"""
Command-line interface for the DNS reconciler.

This module provides the main CLI entry point with commands for:
- reconcile: Compare expected directory records against live DNS
- watch: Wait for a record change to propagate across resolvers
- baseline capture / diff: Snapshot DNS state and detect drift
- config: Configuration management

Exit codes: 0 on full compliance or convergence, 1 when mismatches, drift or
a failed watch were found, 2 on operational errors (config, directory API,
persistence).
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional, Union

from . import __version__
from .audit_logger import AuditLogger
from .baseline_store import BaselineStore, LiveRecordSweep
from .config import (
    DEFAULT_DOH_ENDPOINT,
    BaselineConfig,
    DirectoryConfig,
    LoggingConfig,
    ResolverConfig,
    RetryConfig,
    SystemConfig,
    WatchConfig,
    apply_env_overrides,
    parse_transport,
    validate_server,
)
from .differ import diff
from .enums import ComparisonStatus, LogLevel, PropagationState, RecordType, Transport
from .exceptions import ConfigError, DnsReconcilerError
from .expected_records import ExpectedRecordAdapter, HttpDirectoryClient, JsonFileDirectoryClient
from .models import ChangeEntry, PropagationSession, PropagationTarget, ReconciliationReport
from .normalizer import fqdn, parse_rdata
from .orchestrator import ReconciliationOrchestrator
from .resolver import Resolver
from .retry_manager import RetryManager
from .watcher import PropagationWatcher


EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_ERROR = 2

DEFAULT_CONFIG_PATH = Path.home() / ".dns_reconciler" / "config.json"

STATUS_SYMBOLS = {
    ComparisonStatus.MATCH: "OK",
    ComparisonStatus.MISMATCH: "MISMATCH",
    ComparisonStatus.MISSING: "MISSING",
    ComparisonStatus.EXTRA: "EXTRA",
    ComparisonStatus.DEPRECATED_PRESENT: "DEPRECATED",
    ComparisonStatus.LEGACY_ABSENT: "RETIRED",
    ComparisonStatus.LOOKUP_FAILED: "FAILED",
}


def create_default_config(
    baseline_dir: Optional[Path] = None,
    hmac_secret: Optional[str] = None,
) -> SystemConfig:
    """
    Create a default system configuration.

    Args:
        baseline_dir: Directory for baseline files
        hmac_secret: Optional secret for baseline HMAC protection

    Returns:
        SystemConfig with default settings
    """
    baseline = BaselineConfig(hmac_secret=hmac_secret)
    if baseline_dir is not None:
        baseline.directory = baseline_dir
    return SystemConfig(baseline=baseline)


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Missing sections and keys fall back to their defaults.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        resolver_data = data.get("resolver", {})
        resolver = ResolverConfig(
            default_transport=parse_transport(resolver_data.get("default_transport", "encrypted")),
            doh_endpoint=resolver_data.get("doh_endpoint", DEFAULT_DOH_ENDPOINT),
            nameservers=list(resolver_data.get("nameservers", [])),
            timeout_seconds=float(resolver_data.get("timeout_seconds", 5.0)),
            max_concurrency=int(resolver_data.get("max_concurrency", 8)),
        )

        retry_data = data.get("retry", {})
        retry = RetryConfig(
            max_retries=int(retry_data.get("max_retries", 2)),
            base_delay_seconds=float(retry_data.get("base_delay_seconds", 0.5)),
            max_delay_seconds=float(retry_data.get("max_delay_seconds", 8.0)),
        )
        if "retryable_errors" in retry_data:
            retry.retryable_errors = list(retry_data["retryable_errors"])

        watch_data = data.get("watch", {})
        watch = WatchConfig(
            interval_seconds=float(watch_data.get("interval_seconds", 30.0)),
            timeout_seconds=float(watch_data.get("timeout_seconds", 900.0)),
        )
        if "servers" in watch_data:
            watch.servers = list(watch_data["servers"])

        directory_data = data.get("directory", {})
        directory = DirectoryConfig(
            base_url=directory_data.get("base_url", DirectoryConfig().base_url),
            token=directory_data.get("token"),
            timeout_seconds=float(directory_data.get("timeout_seconds", 15.0)),
        )
        if "legacy_labels" in directory_data:
            directory.legacy_labels = list(directory_data["legacy_labels"])

        baseline_data = data.get("baseline", {})
        baseline = BaselineConfig(hmac_secret=baseline_data.get("hmac_secret"))
        if baseline_data.get("directory"):
            baseline.directory = Path(baseline_data["directory"])

        logging_data = data.get("logging", {})
        logging_config = LoggingConfig(
            level=logging_data.get("level", "info"),
            output_format=logging_data.get("output_format", "text"),
        )

        return SystemConfig(
            resolver=resolver,
            retry=retry,
            watch=watch,
            directory=directory,
            baseline=baseline,
            logging=logging_config,
        )

    except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError, ConfigError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Args:
        config: SystemConfig to save
        config_path: Path to save the configuration

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "resolver": {
                "default_transport": config.resolver.default_transport.value,
                "doh_endpoint": config.resolver.doh_endpoint,
                "nameservers": config.resolver.nameservers,
                "timeout_seconds": config.resolver.timeout_seconds,
                "max_concurrency": config.resolver.max_concurrency,
            },
            "retry": {
                "max_retries": config.retry.max_retries,
                "base_delay_seconds": config.retry.base_delay_seconds,
                "max_delay_seconds": config.retry.max_delay_seconds,
                "retryable_errors": config.retry.retryable_errors,
            },
            "watch": {
                "interval_seconds": config.watch.interval_seconds,
                "timeout_seconds": config.watch.timeout_seconds,
                "servers": config.watch.servers,
            },
            "directory": {
                "base_url": config.directory.base_url,
                "token": config.directory.token,
                "timeout_seconds": config.directory.timeout_seconds,
                "legacy_labels": config.directory.legacy_labels,
            },
            "baseline": {
                "directory": str(config.baseline.directory),
                "hmac_secret": config.baseline.hmac_secret,
            },
            "logging": {
                "level": config.logging.level,
                "output_format": config.logging.output_format,
            },
        }

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(f"Error saving config: {e}", file=sys.stderr)
        return False


# Building blocks shared by the commands


def resolve_config(args: argparse.Namespace) -> SystemConfig:
    """
    File (or defaults), then environment, then command-line overrides.

    Raises:
        ConfigError: If the file cannot be loaded or the result is invalid
    """
    config: Optional[SystemConfig] = None
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config))
        if config is None:
            raise ConfigError(
                code="config_not_loaded",
                message=f"Could not load config from {args.config}",
                details={"path": str(args.config)},
            )
    if config is None:
        config = create_default_config()

    config = apply_env_overrides(config)
    if getattr(args, "token", None):
        config.directory.token = args.token
    return config.validate()


def create_logger(config: SystemConfig, verbose: bool = False) -> AuditLogger:
    level = LogLevel.DEBUG if verbose else LogLevel(config.logging.level.lower())
    return AuditLogger(output_format=config.logging.output_format, level=level)


def infer_transport(
    explicit: Optional[str],
    servers: list[str],
    default: Transport,
) -> Transport:
    """
    Pick the transport for a set of servers.

    An explicit choice wins. Otherwise URLs mean DoH and bare addresses
    mean standard DNS; with no servers the configured default applies.
    """
    if explicit:
        return parse_transport(explicit)
    if servers and all(s.lower().startswith("https://") for s in servers):
        return Transport.ENCRYPTED
    if servers and not any("://" in s for s in servers):
        if default == Transport.AUTHORITATIVE:
            return default
        return Transport.STANDARD
    return default


def build_directory_client(
    args: argparse.Namespace,
    config: SystemConfig,
    retry_manager: RetryManager,
) -> Union[JsonFileDirectoryClient, HttpDirectoryClient]:
    if getattr(args, "records_file", None):
        return JsonFileDirectoryClient(Path(args.records_file))
    if config.directory.token:
        return HttpDirectoryClient(
            base_url=config.directory.base_url,
            token=config.directory.token,
            timeout=config.directory.timeout_seconds,
            retry_manager=retry_manager,
        )
    raise ConfigError(
        code="no_directory_source",
        message="Expected records need --records-file or a directory token",
        details={"env": "DNS_RECONCILER_DIRECTORY_TOKEN"},
    )


async def close_directory_client(client) -> None:
    if isinstance(client, HttpDirectoryClient):
        await client.close()


def report_to_dict(report: ReconciliationReport) -> dict:
    return {
        "server": report.server,
        "score": report.score,
        "counts": report.counts,
        "results": [
            {
                "status": r.status.value,
                "name": r.name,
                "type": r.type.value,
                "expected": [e.data.to_text() for e in r.expected],
                "actual": [a.data.to_text() for a in r.actual],
                "note": r.note,
            }
            for r in report.results
        ],
    }


def session_to_dict(session: PropagationSession) -> dict:
    return {
        "name": session.target.name,
        "type": session.target.type.value,
        "expected": session.target.expected_value.to_text(),
        "servers": list(session.servers),
        "state": session.state.value,
        "ticks": session.ticks,
        "started_at": session.started_at,
        "finished_at": session.finished_at,
        "history": [
            {
                "timestamp": o.timestamp,
                "tick": o.tick,
                "server": o.server,
                "status": o.status.value,
                "values": list(o.values),
                "matched": o.matched,
                "error": o.error,
            }
            for o in session.history
        ],
    }


def change_to_dict(change: ChangeEntry) -> dict:
    return {
        "kind": change.kind.value,
        "name": change.name,
        "type": change.type.value,
        "old_value": list(change.old_value) if change.old_value is not None else None,
        "new_value": list(change.new_value) if change.new_value is not None else None,
    }


def write_output(data, output: Optional[str]) -> None:
    """Write a JSON document to a file, or nowhere when no path was given."""
    if not output:
        return
    output_path = Path(output)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        print(f"Results written to: {output_path}")
    except OSError as e:
        print(f"Error writing results: {e}", file=sys.stderr)


def print_report(report: ReconciliationReport) -> None:
    header = f"Server: {report.server}" if report.server else "Resolver: default"
    print(header)
    for result in report.results:
        label = STATUS_SYMBOLS[result.status]
        line = f"  [{label:<10}] {result.name} {result.type.value}"
        if result.note:
            line += f" ({result.note})"
        print(line)
        if result.status == ComparisonStatus.MISMATCH:
            for record in result.expected:
                print(f"      expected: {record.data.to_text()}")
            for record in result.actual:
                print(f"      actual:   {record.data.to_text()}")
    print(f"  Compliance score: {report.score:.0%}")


# Commands


async def run_reconcile(args: argparse.Namespace, config: SystemConfig, logger: AuditLogger) -> int:
    servers = list(args.server or [])
    transport = infer_transport(args.transport, servers, config.resolver.default_transport)
    for server in servers:
        validate_server(server, transport)
    retry_manager = RetryManager(config.retry)
    directory = build_directory_client(args, config, retry_manager)
    adapter = ExpectedRecordAdapter(
        directory,
        legacy_labels=config.directory.legacy_labels,
        logger=logger,
    )

    try:
        async with Resolver(config.resolver, retry_manager=retry_manager, logger=logger) as resolver:
            orchestrator = ReconciliationOrchestrator(
                adapter,
                resolver,
                logger=logger,
                max_concurrency=config.resolver.max_concurrency,
            )
            if len(servers) > 1:
                reports = await orchestrator.reconcile_per_server(args.domain, servers, transport)
            else:
                server = servers[0] if servers else None
                reports = [await orchestrator.reconcile(args.domain, transport, server)]
    finally:
        await close_directory_client(directory)

    for report in reports:
        print_report(report)
    write_output([report_to_dict(r) for r in reports], args.output)
    return EXIT_OK if all(r.is_compliant for r in reports) else EXIT_FINDINGS


async def run_watch(args: argparse.Namespace, config: SystemConfig, logger: AuditLogger) -> int:
    servers = list(args.server or config.watch.servers)
    transport = infer_transport(args.transport, servers, config.resolver.default_transport)
    interval = args.interval if args.interval is not None else config.watch.interval_seconds
    timeout = args.timeout if args.timeout is not None else config.watch.timeout_seconds

    try:
        record_type = RecordType.parse(args.type)
        target = PropagationTarget(
            name=fqdn(args.name, args.domain),
            type=record_type,
            expected_value=parse_rdata(record_type, args.value),
        )
    except ValueError as e:
        raise ConfigError(
            code="invalid_target",
            message=f"Invalid watch target: {e}",
            details={"type": args.type, "value": args.value},
        )

    cancel_token = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_token.set)
    except (NotImplementedError, RuntimeError):
        pass

    try:
        async with Resolver(config.resolver, logger=logger) as resolver:
            watcher = PropagationWatcher(resolver, logger=logger)
            session = await watcher.watch(
                target,
                servers,
                interval,
                timeout,
                cancel_token=cancel_token,
                transport=transport,
            )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    print(f"Watch {session.state.value} after {session.ticks} tick(s): "
          f"{target.name} {target.type.value} {target.expected_value.to_text()}")
    if session.ticks:
        for observation in session.observations_for_tick(session.ticks - 1):
            mark = "ok" if observation.matched else "--"
            shown = ", ".join(observation.values) or observation.error or observation.status.value
            print(f"  [{mark}] {observation.server}: {shown}")
    write_output(session_to_dict(session), args.output)
    return EXIT_OK if session.state == PropagationState.CONVERGED else EXIT_FINDINGS


def build_record_source(
    args: argparse.Namespace,
    config: SystemConfig,
    resolver: Resolver,
    retry_manager: RetryManager,
    logger: AuditLogger,
):
    """Returns (record_source, directory_client_or_None)."""
    if args.source == "expected":
        directory = build_directory_client(args, config, retry_manager)
        adapter = ExpectedRecordAdapter(
            directory,
            legacy_labels=config.directory.legacy_labels,
            logger=logger,
        )
        return adapter, directory

    servers = list(args.server or [])
    if len(servers) > 1:
        raise ConfigError(
            code="too_many_servers",
            message=f"A live record sweep queries a single server; got {len(servers)}",
            details={"servers": servers},
        )
    transport = infer_transport(args.transport, servers, config.resolver.default_transport)
    server = servers[0] if servers else None
    if server:
        validate_server(server, transport)
    sweep = LiveRecordSweep(resolver, transport=transport, server=server, logger=logger)
    return sweep, None


async def run_baseline_capture(args: argparse.Namespace, config: SystemConfig, logger: AuditLogger) -> int:
    store = BaselineStore(
        config.baseline.directory,
        hmac_secret=config.baseline.hmac_secret,
        logger=logger,
    )
    retry_manager = RetryManager(config.retry)
    async with Resolver(config.resolver, retry_manager=retry_manager, logger=logger) as resolver:
        source, directory = build_record_source(args, config, resolver, retry_manager, logger)
        try:
            snapshot = await store.capture(args.domain, source, source=args.source)
        finally:
            await close_directory_client(directory)

    path = store.save(snapshot, Path(args.output) if args.output else None)
    print(f"Captured {len(snapshot.records)} record(s) for {snapshot.domain}")
    print(f"Baseline written to: {path}")
    return EXIT_OK


async def run_baseline_diff(args: argparse.Namespace, config: SystemConfig, logger: AuditLogger) -> int:
    store = BaselineStore(
        config.baseline.directory,
        hmac_secret=config.baseline.hmac_secret,
        logger=logger,
    )
    path = Path(args.baseline) if args.baseline else store.latest(args.domain)
    if path is None:
        raise ConfigError(
            code="no_baseline",
            message=f"No baseline found for {args.domain} in {store.directory}",
            details={"domain": args.domain},
        )
    baseline = store.load(path)

    retry_manager = RetryManager(config.retry)
    async with Resolver(config.resolver, retry_manager=retry_manager, logger=logger) as resolver:
        source, directory = build_record_source(args, config, resolver, retry_manager, logger)
        try:
            current = await source.fetch_records(args.domain)
        finally:
            await close_directory_client(directory)

    changes = diff(baseline, current)
    print(f"Baseline: {path} ({baseline.captured_at.isoformat()})")
    if not changes:
        print("  No drift detected.")
    for change in changes:
        print(f"  [{change.kind.value:<8}] {change.name} {change.type.value}")
        if change.old_value is not None:
            print(f"      was: {', '.join(change.old_value)}")
        if change.new_value is not None:
            print(f"      now: {', '.join(change.new_value)}")
    write_output([change_to_dict(c) for c in changes], args.output_diff)
    return EXIT_FINDINGS if changes else EXIT_OK


def _run(args: argparse.Namespace, runner) -> int:
    """Resolve config and run an async command, mapping errors to exit codes."""
    try:
        config = resolve_config(args)
        logger = create_logger(config, args.verbose)
        return asyncio.run(runner(args, config, logger))
    except DnsReconcilerError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return EXIT_ERROR


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Handle the 'reconcile' command."""
    return _run(args, run_reconcile)


def cmd_watch(args: argparse.Namespace) -> int:
    """Handle the 'watch' command."""
    return _run(args, run_watch)


def cmd_baseline(args: argparse.Namespace) -> int:
    """Handle the 'baseline' command."""
    if args.action == "capture":
        return _run(args, run_baseline_capture)
    return _run(args, run_baseline_diff)


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH

    if args.action == "show":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return EXIT_ERROR

        print(f"Configuration from: {config_path}")
        print(f"  Transport: {config.resolver.default_transport.value}")
        print(f"  DoH endpoint: {config.resolver.doh_endpoint}")
        print(f"  Nameservers: {', '.join(config.resolver.nameservers) or 'system'}")
        print(f"  Watch servers: {', '.join(config.watch.servers)}")
        print(f"  Directory API: {config.directory.base_url}")
        print(f"  Baseline directory: {config.baseline.directory}")
        print(f"  Baseline HMAC: {'enabled' if config.baseline.hmac_secret else 'disabled'}")
        print(f"  Log level: {config.logging.level}")
        return EXIT_OK

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return EXIT_ERROR

        config = create_default_config()
        if save_config_to_file(config, config_path):
            print(f"Configuration created at: {config_path}")
            return EXIT_OK
        return EXIT_ERROR

    elif args.action == "validate":
        config = load_config_from_file(config_path)
        if config is None:
            print(f"Error: Could not load config from {config_path}", file=sys.stderr)
            return EXIT_ERROR
        try:
            config.validate()
        except ConfigError as e:
            print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
            return EXIT_ERROR

        print(f"Configuration at {config_path} is valid.")
        return EXIT_OK

    return EXIT_ERROR


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--domain", "-d",
        required=True,
        help="Domain to inspect (e.g., contoso.com)",
    )
    parser.add_argument(
        "--server", "-s",
        action="append",
        help="Resolver to query: a DoH URL or a nameserver IP (repeatable)",
    )
    parser.add_argument(
        "--transport", "-t",
        choices=[t.value for t in Transport],
        help="Query transport (default: inferred from --server, else config)",
    )
    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )


def _add_directory_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--records-file", "-r",
        help="Saved directory response (JSON) to use as the expected records",
    )
    parser.add_argument(
        "--token",
        help="Bearer token for the directory API",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dns-reconciler",
        description="Reconcile a custom domain's DNS records against the directory's expected set",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'reconcile' command
    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Compare expected records against live DNS",
    )
    _add_common_arguments(reconcile_parser)
    _add_directory_arguments(reconcile_parser)
    reconcile_parser.add_argument(
        "--output", "-o",
        help="Path to write the report(s) as JSON",
    )
    reconcile_parser.set_defaults(func=cmd_reconcile)

    # 'watch' command
    watch_parser = subparsers.add_parser(
        "watch",
        help="Wait until a record value is served by every resolver",
    )
    _add_common_arguments(watch_parser)
    watch_parser.add_argument(
        "--name", "-n",
        default="@",
        help="Record label relative to the domain (default: @)",
    )
    watch_parser.add_argument(
        "--type",
        required=True,
        help="Record type (MX, TXT, CNAME, SRV, ...)",
    )
    watch_parser.add_argument(
        "--value",
        required=True,
        help='Expected record data, e.g. "0 contoso-com.mail.example.net."',
    )
    watch_parser.add_argument(
        "--interval", "-i",
        type=float,
        help="Seconds between polls (default from config)",
    )
    watch_parser.add_argument(
        "--timeout", "-T",
        type=float,
        help="Seconds before giving up (default from config)",
    )
    watch_parser.add_argument(
        "--output", "-o",
        help="Path to write the session as JSON",
    )
    watch_parser.set_defaults(func=cmd_watch)

    # 'baseline' command
    baseline_parser = subparsers.add_parser(
        "baseline",
        help="Capture DNS baselines and detect drift",
    )
    baseline_parser.add_argument(
        "action",
        choices=["capture", "diff"],
        help="Baseline action",
    )
    _add_common_arguments(baseline_parser)
    _add_directory_arguments(baseline_parser)
    baseline_parser.add_argument(
        "--source",
        choices=["live", "expected"],
        default="live",
        help="Record source: a live DNS sweep or the directory's expected set",
    )
    baseline_parser.add_argument(
        "--output", "-o",
        help="capture: baseline file path (default: store directory)",
    )
    baseline_parser.add_argument(
        "--baseline", "-b",
        help="diff: baseline file to compare against (default: latest)",
    )
    baseline_parser.add_argument(
        "--output-diff",
        help="diff: path to write the changes as JSON",
    )
    baseline_parser.set_defaults(func=cmd_baseline)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
