"""
Reconciliation orchestrator.

Ties the expected-record adapter, the resolver and the reconciliation engine
together for one domain: fetch expected records, look up every expected
(name, type) key plus the other supported types at the expected names, then
reconcile. In per-server mode every key is looked up on each of several
resolvers, with the same retry policy, and one report is produced per server.
"""

import asyncio
from typing import Iterable, Optional

from .audit_logger import AuditLogger, LoggingMixin
from .enums import LookupStatus, RecordType, Transport
from .expected_records import ExpectedRecordAdapter
from .models import CanonicalRecord, LookupResult, ReconciliationReport
from .reconciler import Key, ReconciliationEngine
from .resolver import Resolver


# Types the directory emits; also the types probed for unexpected records
SUPPORTED_TYPES = (RecordType.MX, RecordType.TXT, RecordType.CNAME, RecordType.SRV)


def probe_keys(expected: Iterable[CanonicalRecord]) -> list[Key]:
    """
    Keys to look up for a set of expected records.

    Every expected key, plus each supported type at every expected name.
    Underscore names (service locators) are only probed for SRV and TXT.
    """
    keys = {r.key for r in expected}
    for name in {r.name for r in expected}:
        leaf = name.split(".", 1)[0]
        types = (RecordType.SRV, RecordType.TXT) if leaf.startswith("_") else SUPPORTED_TYPES
        keys.update((name, t) for t in types)
    return sorted(keys, key=lambda k: (k[0], k[1].value))


def collect_actual(
    lookups: dict[Key, LookupResult],
    expected_keys: set[Key],
) -> tuple[list[CanonicalRecord], set[Key]]:
    """
    Turn per-key lookups into actual records and failed expected keys.

    A name that resolves as a CNAME carries no other data of its own, so
    records of other types found there (answers chased through the alias)
    are dropped unless that key was expected.
    """
    aliased = {
        name for (name, record_type), result in lookups.items()
        if record_type == RecordType.CNAME and result.status == LookupStatus.FOUND
    }

    actual: list[CanonicalRecord] = []
    failed: set[Key] = set()
    for key, result in lookups.items():
        name, record_type = key
        if result.status == LookupStatus.ERROR:
            if key in expected_keys:
                failed.add(key)
            continue
        if name in aliased and record_type != RecordType.CNAME and key not in expected_keys:
            continue
        actual.extend(result.records)
    return actual, failed


class ReconciliationOrchestrator(LoggingMixin):
    """Runs one end-to-end reconciliation for a domain."""

    COMPONENT = "ReconciliationOrchestrator"

    def __init__(
        self,
        adapter: ExpectedRecordAdapter,
        resolver: Resolver,
        engine: Optional[ReconciliationEngine] = None,
        logger: Optional[AuditLogger] = None,
        max_concurrency: int = 8,
    ) -> None:
        """
        Args:
            adapter: Source of expected records
            resolver: Resolver used for the actual lookups
            engine: Reconciliation engine (a fresh one by default)
            logger: Optional audit logger
            max_concurrency: Upper bound on concurrent key lookups
        """
        self._adapter = adapter
        self._resolver = resolver
        self._engine = engine or ReconciliationEngine(logger=logger)
        self._logger = logger
        self._max_concurrency = max(1, max_concurrency)

    async def reconcile(
        self,
        domain: str,
        transport: Optional[Transport] = None,
        server: Optional[str] = None,
    ) -> ReconciliationReport:
        """
        Reconcile a domain against one resolver.

        Lookups are retried on transient transport errors; keys whose lookup
        still failed are reported as LOOKUP_FAILED.

        Raises:
            AdapterError: If the expected records could not be mapped
            TransportError: If the directory API could not be reached
        """
        expected = await self._adapter.get_expected(domain)
        keys = probe_keys(expected)
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def lookup(key: Key) -> LookupResult:
            async with semaphore:
                return await self._resolver.query_with_retry(
                    key[0], key[1], transport=transport, server=server
                )

        results = await asyncio.gather(*(lookup(k) for k in keys))
        lookups = dict(zip(keys, results))
        actual, failed = collect_actual(lookups, {r.key for r in expected})

        if failed:
            self._log_warning(
                self.COMPONENT,
                f"{len(failed)} expected key(s) could not be looked up",
                {"domain": domain, "keys": [f"{n} {t.value}" for n, t in sorted(failed, key=str)]},
            )
        return self._engine.reconcile(expected, actual, failed_keys=failed, server=server)

    async def reconcile_per_server(
        self,
        domain: str,
        servers: list[str],
        transport: Optional[Transport] = None,
    ) -> list[ReconciliationReport]:
        """
        Reconcile a domain against each server independently.

        Every key is queried on every server with the same retry policy as
        reconcile(); a server that still fails for a key only affects that
        server's report.

        Returns:
            One report per server, in the order of servers
        """
        expected = await self._adapter.get_expected(domain)
        keys = probe_keys(expected)
        expected_keys = {r.key for r in expected}
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def lookup(key: Key, server: str) -> LookupResult:
            async with semaphore:
                return await self._resolver.query_with_retry(
                    key[0], key[1], transport=transport, server=server
                )

        pairs = [(key, server) for server in servers for key in keys]
        results = await asyncio.gather(*(lookup(k, s) for k, s in pairs))

        reports = []
        for index, server in enumerate(servers):
            lookups = dict(zip(keys, results[index * len(keys):(index + 1) * len(keys)]))
            actual, failed = collect_actual(lookups, expected_keys)
            reports.append(
                self._engine.reconcile(expected, actual, failed_keys=failed, server=server)
            )
        return reports
