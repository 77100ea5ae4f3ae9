"""
DNS Reconciler - expected vs. actual DNS records for a custom domain.

This package compares the records a managed identity/email platform expects
for a verified domain against what DNS actually serves, watches record
changes propagate across resolvers, and detects drift against saved
baselines.
"""

__version__ = "0.1.0"
__author__ = "DNS Reconciler Team"

from dns_reconciler.exceptions import (
    DnsReconcilerError,
    TransportError,
    AdapterError,
    ConfigError,
    PersistenceError,
    TamperingError,
    InvalidTransitionError,
    ValidationError,
)
from dns_reconciler.enums import (
    RecordType,
    RecordOrigin,
    Transport,
    LookupStatus,
    ResolverErrorCode,
    ComparisonStatus,
    PropagationState,
    ChangeKind,
    LogLevel,
)
from dns_reconciler.config import (
    ResolverConfig,
    RetryConfig,
    WatchConfig,
    DirectoryConfig,
    BaselineConfig,
    LoggingConfig,
    SystemConfig,
    apply_env_overrides,
)
from dns_reconciler.models import (
    MXData,
    CNAMEData,
    TXTData,
    SRVData,
    AddressData,
    NSData,
    PTRData,
    SOAData,
    RecordData,
    CanonicalRecord,
    LookupFailure,
    LookupResult,
    ServerLookupResult,
    ComparisonResult,
    ReconciliationReport,
    PropagationTarget,
    Observation,
    PropagationSession,
    BaselineSnapshot,
    ChangeEntry,
)
from dns_reconciler.normalizer import (
    normalize_name,
    normalize_record,
    comparison_key,
    data_equal,
    records_equal,
    parse_rdata,
    make_record,
)
from dns_reconciler.doh_client import DoHClient
from dns_reconciler.dns_client import StandardDNSClient
from dns_reconciler.retry_manager import (
    RetryManager,
    RetryResult,
)
from dns_reconciler.resolver import Resolver
from dns_reconciler.expected_records import (
    DirectoryClient,
    HttpDirectoryClient,
    JsonFileDirectoryClient,
    ExpectedRecordAdapter,
)
from dns_reconciler.reconciler import (
    ReconciliationEngine,
    compliance_score,
)
from dns_reconciler.orchestrator import ReconciliationOrchestrator
from dns_reconciler.watcher import PropagationWatcher
from dns_reconciler.baseline_store import (
    RecordSource,
    LiveRecordSweep,
    BaselineStore,
)
from dns_reconciler.differ import diff
from dns_reconciler.audit_logger import (
    AuditLogger,
    LogEntry,
)
from dns_reconciler.cli import (
    main as cli_main,
    create_parser,
    create_default_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    # Exceptions
    "DnsReconcilerError",
    "TransportError",
    "AdapterError",
    "ConfigError",
    "PersistenceError",
    "TamperingError",
    "InvalidTransitionError",
    "ValidationError",
    # Enums
    "RecordType",
    "RecordOrigin",
    "Transport",
    "LookupStatus",
    "ResolverErrorCode",
    "ComparisonStatus",
    "PropagationState",
    "ChangeKind",
    "LogLevel",
    # Configuration
    "ResolverConfig",
    "RetryConfig",
    "WatchConfig",
    "DirectoryConfig",
    "BaselineConfig",
    "LoggingConfig",
    "SystemConfig",
    "apply_env_overrides",
    # Models
    "MXData",
    "CNAMEData",
    "TXTData",
    "SRVData",
    "AddressData",
    "NSData",
    "PTRData",
    "SOAData",
    "RecordData",
    "CanonicalRecord",
    "LookupFailure",
    "LookupResult",
    "ServerLookupResult",
    "ComparisonResult",
    "ReconciliationReport",
    "PropagationTarget",
    "Observation",
    "PropagationSession",
    "BaselineSnapshot",
    "ChangeEntry",
    # Normalizer
    "normalize_name",
    "normalize_record",
    "comparison_key",
    "data_equal",
    "records_equal",
    "parse_rdata",
    "make_record",
    # Transports
    "DoHClient",
    "StandardDNSClient",
    "Resolver",
    # Retry Manager
    "RetryManager",
    "RetryResult",
    # Expected records
    "DirectoryClient",
    "HttpDirectoryClient",
    "JsonFileDirectoryClient",
    "ExpectedRecordAdapter",
    # Reconciliation
    "ReconciliationEngine",
    "compliance_score",
    "ReconciliationOrchestrator",
    # Propagation
    "PropagationWatcher",
    # Baselines
    "RecordSource",
    "LiveRecordSweep",
    "BaselineStore",
    "diff",
    # Audit Logger
    "AuditLogger",
    "LogEntry",
    # CLI
    "cli_main",
    "create_parser",
    "create_default_config",
    "load_config_from_file",
    "save_config_to_file",
]
