"""
Resolver abstraction for the DNS reconciler.

This module provides one query interface over three transports:
- ENCRYPTED: DNS-over-HTTPS JSON lookups (DoHClient)
- STANDARD: plain DNS through dnspython (StandardDNSClient)
- AUTHORITATIVE: discover the zone's nameservers, then ask them directly

It also provides a per-server fan-out used by the propagation watcher and
multi-server reconciliation, and a retried one-shot query used by the
reconciliation orchestrator.
"""

import asyncio
from typing import Optional

from .audit_logger import AuditLogger, LoggingMixin
from .config import ResolverConfig
from .dns_client import StandardDNSClient
from .doh_client import DoHClient
from .enums import LookupStatus, RecordType, ResolverErrorCode, Transport
from .exceptions import ValidationError
from .models import LookupFailure, LookupResult, NSData, ServerLookupResult, SOAData
from .normalizer import normalize_name
from .retry_manager import RetryManager


class Resolver(LoggingMixin):
    """
    Transport-agnostic DNS query layer.

    Built once from an explicit ResolverConfig; holds no state shared between
    concurrent queries apart from the underlying HTTP connection pool.
    """

    COMPONENT = "Resolver"

    def __init__(
        self,
        config: ResolverConfig,
        retry_manager: Optional[RetryManager] = None,
        logger: Optional[AuditLogger] = None,
        doh_client: Optional[DoHClient] = None,
        dns_client: Optional[StandardDNSClient] = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            config: Resolver configuration (transport, endpoints, timeouts)
            retry_manager: Optional retry manager for query_with_retry
            logger: Optional audit logger
            doh_client: Optional DoH client (defaults to one built from config)
            dns_client: Optional standard client (defaults to one built from config)
        """
        self._config = config
        self._retry_manager = retry_manager
        self._logger = logger
        self._doh = doh_client or DoHClient(
            endpoint=config.doh_endpoint,
            timeout=config.timeout_seconds,
        )
        self._dns = dns_client or StandardDNSClient(
            nameservers=config.nameservers,
            timeout=config.timeout_seconds,
        )

    async def __aenter__(self) -> "Resolver":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._doh.close()

    @property
    def config(self) -> ResolverConfig:
        return self._config

    @property
    def discovery_transport(self) -> Transport:
        """Transport used for nameserver discovery and as the authoritative fallback."""
        if self._config.default_transport == Transport.AUTHORITATIVE:
            return Transport.ENCRYPTED
        return self._config.default_transport

    async def query(
        self,
        name: str,
        record_type: RecordType,
        transport: Optional[Transport] = None,
        server: Optional[str] = None,
    ) -> LookupResult:
        """
        Query one (name, type) pair through one transport.

        Args:
            name: Name to query
            record_type: Record type to query
            transport: Transport to use (defaults to the configured one)
            server: Optional server: a DoH URL for ENCRYPTED, a nameserver IP
                    for STANDARD and AUTHORITATIVE

        Returns:
            LookupResult; NOT_FOUND and ERROR are distinct statuses
        """
        transport = transport or self._config.default_transport

        if transport == Transport.ENCRYPTED:
            return await self._doh.query(name, record_type, endpoint=server)
        if transport == Transport.STANDARD:
            return await self._dns.query(name, record_type, server=server)
        if transport == Transport.AUTHORITATIVE:
            if server:
                return await self._dns.query(
                    name, record_type, server=server, transport=Transport.AUTHORITATIVE
                )
            return await self._query_authoritative(name, record_type)

        return LookupResult(
            name=name,
            type=record_type,
            status=LookupStatus.ERROR,
            error=LookupFailure(
                code=ResolverErrorCode.UNSUPPORTED_TYPE,
                message=f"Unsupported transport: {transport!r}",
            ),
            server=server,
        )

    async def _query_authoritative(self, name: str, record_type: RecordType) -> LookupResult:
        """Ask the first reachable authoritative server; fall back on discovery failure."""
        nameservers = await self.discover_authoritative(name)
        if not nameservers:
            fallback = self.discovery_transport
            self._log_warning(
                self.COMPONENT,
                "Authoritative nameserver discovery failed; falling back to default transport",
                {"name": name, "type": record_type.value, "fallback": fallback.value},
            )
            return await self.query(name, record_type, transport=fallback)

        last_result: Optional[LookupResult] = None
        for ip in nameservers:
            result = await self._dns.query(
                name, record_type, server=ip, transport=Transport.AUTHORITATIVE
            )
            if result.ok:
                return result
            self._log_debug(
                self.COMPONENT,
                f"Authoritative server {ip} unreachable",
                {"name": name, "error": result.error.message if result.error else None},
            )
            last_result = result

        assert last_result is not None
        return last_result

    async def discover_authoritative(self, name: str) -> list[str]:
        """
        Find the addresses of the authoritative nameservers for a name.

        Walks up the name's labels looking for an NS set owned by the label
        itself, skipping aliases whose NS answer is the CNAME target's. If
        none is found, uses the SOA primary (MNAME) as the single nameserver.
        Nameserver hostnames are resolved to IPv4 addresses.

        Returns:
            Ordered list of nameserver IPs (empty if discovery failed)
        """
        transport = self.discovery_transport
        try:
            labels = normalize_name(name).split(".")
        except ValidationError:
            return []

        hosts: list[str] = []
        for i in range(len(labels)):
            zone = ".".join(labels[i:])
            if not zone:
                continue
            result = await self.query(zone, RecordType.NS, transport=transport)
            if result.status != LookupStatus.FOUND:
                continue
            # an alias is never a zone cut
            alias = await self.query(zone, RecordType.CNAME, transport=transport)
            if alias.status == LookupStatus.FOUND:
                self._log_debug(
                    self.COMPONENT,
                    f"Skipping NS answer at alias {zone}",
                    {"name": name},
                )
                continue
            hosts = sorted(
                r.data.target
                for r in result.records
                if isinstance(r.data, NSData) and r.name == zone
            )
            if hosts:
                break

        if not hosts:
            soa = await self.query(name, RecordType.SOA, transport=transport)
            if soa.status == LookupStatus.FOUND:
                hosts = [r.data.mname for r in soa.records if isinstance(r.data, SOAData)]

        addresses: list[str] = []
        for host in hosts:
            result = await self.query(host, RecordType.A, transport=transport)
            if result.status != LookupStatus.FOUND:
                continue
            for record in result.records:
                address = record.data.to_text()
                if address not in addresses:
                    addresses.append(address)

        if addresses:
            self._log_debug(
                self.COMPONENT,
                f"Discovered {len(addresses)} authoritative server(s) for {name}",
                {"nameservers": hosts, "addresses": addresses},
            )
        return addresses

    async def fan_out(
        self,
        name: str,
        record_type: RecordType,
        servers: list[str],
        transport: Optional[Transport] = None,
    ) -> list[ServerLookupResult]:
        """
        Query the same (name, type) against several servers concurrently.

        Each server query is independent; a failure (including an unexpected
        exception) becomes that server's ERROR result and does not affect the
        others. Concurrency is bounded by max_concurrency.

        Returns:
            One ServerLookupResult per server, in the order of servers
        """
        semaphore = asyncio.Semaphore(self._config.max_concurrency)

        async def query_one(server: str) -> ServerLookupResult:
            async with semaphore:
                try:
                    result = await self.query(name, record_type, transport=transport, server=server)
                except Exception as e:
                    self._log_exception(
                        self.COMPONENT,
                        f"Query against {server} raised",
                        e,
                        {"name": name, "type": record_type.value, "server": server},
                    )
                    result = LookupResult(
                        name=name,
                        type=record_type,
                        status=LookupStatus.ERROR,
                        error=LookupFailure(
                            code=ResolverErrorCode.NETWORK_ERROR,
                            message=f"Unexpected error: {e}",
                        ),
                        transport=transport,
                        server=server,
                    )
            return ServerLookupResult(server=server, result=result)

        return list(await asyncio.gather(*(query_one(s) for s in servers)))

    async def query_with_retry(
        self,
        name: str,
        record_type: RecordType,
        transport: Optional[Transport] = None,
        server: Optional[str] = None,
    ) -> LookupResult:
        """One-shot query retried on transient transport errors."""
        if self._retry_manager is None:
            return await self.query(name, record_type, transport=transport, server=server)

        async def do_query() -> LookupResult:
            return await self.query(name, record_type, transport=transport, server=server)

        result, attempts = await self._retry_manager.execute_lookup_with_retry(do_query)
        if result.status == LookupStatus.ERROR:
            result = self._retry_manager.exhausted(result, attempts)
            self._log_warning(
                self.COMPONENT,
                f"Lookup failed after {attempts} attempt(s)",
                {
                    "name": name,
                    "type": record_type.value,
                    "error": result.error.message if result.error else None,
                },
            )
        return result
