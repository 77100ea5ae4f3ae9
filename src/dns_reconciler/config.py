"""
Configuration dataclasses for the DNS reconciler.

This module defines all configuration structures used throughout the system:
resolver transports, retry logic, propagation watching, the directory API,
baseline persistence, and logging. A single SystemConfig is built once and
passed by reference into component constructors.
"""

import ipaddress
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from .enums import LogLevel, Transport
from .exceptions import ConfigError


DEFAULT_DOH_ENDPOINT = "https://cloudflare-dns.com/dns-query"

DEFAULT_LEGACY_LABELS = [
    "msoid",
    "sip",
    "lyncdiscover",
    "_sip._tls",
    "_sipfederationtls._tcp",
]

ENV_PREFIX = "DNS_RECONCILER_"


@dataclass
class ResolverConfig:
    """Resolver transport settings."""

    default_transport: Transport = Transport.ENCRYPTED
    doh_endpoint: str = DEFAULT_DOH_ENDPOINT
    nameservers: list[str] = field(default_factory=list)  # empty = host configuration
    timeout_seconds: float = 5.0
    max_concurrency: int = 8


@dataclass
class RetryConfig:
    """Retry behavior for one-shot reconciliation queries."""

    max_retries: int = 2
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 8.0
    retryable_errors: list[str] = field(
        default_factory=lambda: ["timeout", "network_error", "server_error"]
    )


@dataclass
class WatchConfig:
    """Propagation watcher defaults."""

    interval_seconds: float = 30.0
    timeout_seconds: float = 900.0
    servers: list[str] = field(
        default_factory=lambda: ["1.1.1.1", "8.8.8.8", "9.9.9.9"]
    )


@dataclass
class DirectoryConfig:
    """External directory API settings."""

    base_url: str = "https://graph.microsoft.com/v1.0"
    token: Optional[str] = None
    timeout_seconds: float = 15.0
    legacy_labels: list[str] = field(default_factory=lambda: list(DEFAULT_LEGACY_LABELS))


@dataclass
class BaselineConfig:
    """Baseline persistence settings."""

    directory: Path = field(default_factory=lambda: Path.home() / ".dns_reconciler" / "baselines")
    hmac_secret: Optional[str] = None


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    directory: DirectoryConfig = field(default_factory=DirectoryConfig)
    baseline: BaselineConfig = field(default_factory=BaselineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> "SystemConfig":
        """
        Fail fast on invalid values before any network activity.

        Returns:
            self, to allow chaining

        Raises:
            ConfigError: On the first invalid value found
        """
        validate_resolver_config(self.resolver)
        validate_retry_config(self.retry)
        validate_watch_parameters(
            self.watch.interval_seconds,
            self.watch.timeout_seconds,
            self.watch.servers,
        )
        if self.directory.timeout_seconds <= 0:
            raise ConfigError(
                code="invalid_timeout",
                message="Directory timeout must be positive",
                details={"timeout_seconds": self.directory.timeout_seconds},
            )
        if self.logging.output_format not in ("json", "text", "both"):
            raise ConfigError(
                code="invalid_log_format",
                message=f"Invalid log output format: {self.logging.output_format}",
                details={"output_format": self.logging.output_format},
            )
        try:
            LogLevel(self.logging.level.lower())
        except ValueError:
            raise ConfigError(
                code="invalid_log_level",
                message=f"Invalid log level: {self.logging.level}",
                details={"level": self.logging.level},
            ) from None
        return self


def validate_https_url(url: str, what: str) -> None:
    """Reject non-TLS endpoints."""
    parsed = urlparse(url)
    if parsed.scheme.lower() != "https" or not parsed.netloc:
        raise ConfigError(
            code="invalid_endpoint",
            message=f"{what} must be an https URL: {url}",
            details={"url": url, "scheme": parsed.scheme},
        )


def validate_server(server: str, transport: Transport) -> None:
    """
    Check one resolver endpoint for the given transport.

    ENCRYPTED servers are DoH URLs; STANDARD and AUTHORITATIVE servers are
    IP addresses.
    """
    if transport == Transport.ENCRYPTED:
        validate_https_url(server, "DoH server")
        return
    try:
        ipaddress.ip_address(server)
    except ValueError:
        raise ConfigError(
            code="invalid_server",
            message=f"Nameserver must be an IP address: {server!r}",
            details={"server": server, "transport": transport.value},
        ) from None


def validate_resolver_config(config: ResolverConfig) -> None:
    if not isinstance(config.default_transport, Transport):
        raise ConfigError(
            code="invalid_transport",
            message=f"Unknown transport: {config.default_transport!r}",
            details={"transport": str(config.default_transport)},
        )
    validate_https_url(config.doh_endpoint, "DoH endpoint")
    for server in config.nameservers:
        validate_server(server, Transport.STANDARD)
    if config.timeout_seconds <= 0:
        raise ConfigError(
            code="invalid_timeout",
            message="Resolver timeout must be positive",
            details={"timeout_seconds": config.timeout_seconds},
        )
    if config.max_concurrency < 1:
        raise ConfigError(
            code="invalid_concurrency",
            message="max_concurrency must be at least 1",
            details={"max_concurrency": config.max_concurrency},
        )


def validate_retry_config(config: RetryConfig) -> None:
    if config.max_retries < 0 or config.base_delay_seconds < 0 or config.max_delay_seconds < 0:
        raise ConfigError(
            code="invalid_retry",
            message="Retry settings must not be negative",
            details={
                "max_retries": config.max_retries,
                "base_delay_seconds": config.base_delay_seconds,
                "max_delay_seconds": config.max_delay_seconds,
            },
        )


def validate_watch_parameters(interval: float, timeout: float, servers: list[str]) -> None:
    """Reject watch parameters that could not terminate or poll nothing."""
    if interval <= 0 or timeout <= 0:
        raise ConfigError(
            code="invalid_timeout",
            message="Watch interval and timeout must be positive",
            details={"interval": interval, "timeout": timeout},
        )
    if interval > timeout:
        raise ConfigError(
            code="invalid_interval",
            message="Watch interval must not exceed the timeout",
            details={"interval": interval, "timeout": timeout},
        )
    if not servers:
        raise ConfigError(
            code="no_servers",
            message="At least one server is required to watch propagation",
            details={},
        )


def parse_transport(value: str) -> Transport:
    try:
        return Transport(value.strip().lower())
    except (AttributeError, ValueError):
        raise ConfigError(
            code="invalid_transport",
            message=f"Unknown transport: {value!r}",
            details={"allowed": [t.value for t in Transport]},
        ) from None


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(
            code="invalid_env",
            message=f"{name} must be a number, got {raw!r}",
            details={"variable": name},
        ) from None


def _list_env(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return [p.strip() for chunk in raw.replace(";", ",").split(",") for p in chunk.split() if p.strip()]


def apply_env_overrides(config: SystemConfig, dotenv_path: Optional[Path] = None) -> SystemConfig:
    """
    Overlay DNS_RECONCILER_* environment variables (and a .env file) onto a config.

    Recognized variables: TRANSPORT, DOH_ENDPOINT, NAMESERVERS, TIMEOUT,
    WATCH_SERVERS, WATCH_INTERVAL, WATCH_TIMEOUT, DIRECTORY_URL,
    DIRECTORY_TOKEN, BASELINE_DIR, BASELINE_HMAC_SECRET, LOG_LEVEL.
    """
    load_dotenv(dotenv_path=dotenv_path)

    transport = os.getenv(ENV_PREFIX + "TRANSPORT")
    if transport:
        config.resolver.default_transport = parse_transport(transport)
    config.resolver.doh_endpoint = os.getenv(ENV_PREFIX + "DOH_ENDPOINT", config.resolver.doh_endpoint)
    config.resolver.nameservers = _list_env(ENV_PREFIX + "NAMESERVERS", config.resolver.nameservers)
    config.resolver.timeout_seconds = _float_env(ENV_PREFIX + "TIMEOUT", config.resolver.timeout_seconds)

    config.watch.servers = _list_env(ENV_PREFIX + "WATCH_SERVERS", config.watch.servers)
    config.watch.interval_seconds = _float_env(ENV_PREFIX + "WATCH_INTERVAL", config.watch.interval_seconds)
    config.watch.timeout_seconds = _float_env(ENV_PREFIX + "WATCH_TIMEOUT", config.watch.timeout_seconds)

    config.directory.base_url = os.getenv(ENV_PREFIX + "DIRECTORY_URL", config.directory.base_url)
    config.directory.token = os.getenv(ENV_PREFIX + "DIRECTORY_TOKEN", config.directory.token)

    baseline_dir = os.getenv(ENV_PREFIX + "BASELINE_DIR")
    if baseline_dir:
        config.baseline.directory = Path(baseline_dir)
    config.baseline.hmac_secret = os.getenv(
        ENV_PREFIX + "BASELINE_HMAC_SECRET", config.baseline.hmac_secret
    )
    config.logging.level = os.getenv(ENV_PREFIX + "LOG_LEVEL", config.logging.level)
    return config
