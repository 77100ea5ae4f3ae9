"""
Standard (UDP/TCP) DNS client built on dnspython.

Uses the host's resolver configuration unless nameservers are configured or
a specific server is passed per query. Record data goes through the same
presentation-format parser as the DoH path, so results from both transports
compare identically.
"""

import time
from typing import Optional

import dns.asyncresolver
import dns.exception
import dns.rdatatype
import dns.resolver

from .enums import LookupStatus, RecordOrigin, RecordType, ResolverErrorCode, Transport
from .exceptions import ValidationError
from .models import CanonicalRecord, LookupFailure, LookupResult, TXTData
from .normalizer import normalize_name, parse_rdata


def rdata_to_payload(record_type: RecordType, rdata):
    """Convert one dnspython rdata object into a normalized payload."""
    if record_type == RecordType.TXT:
        # segments are joined raw; to_text() would escape non-ASCII bytes
        text = b"".join(rdata.strings).decode("utf-8", errors="replace")
        return TXTData(text=text)
    return parse_rdata(record_type, rdata.to_text())


class StandardDNSClient:
    """
    Async client for plain DNS lookups.

    A fresh dnspython resolver is built per query so that concurrent
    per-server queries share no mutable state.
    """

    def __init__(
        self,
        nameservers: Optional[list[str]] = None,
        timeout: float = 5.0,
    ) -> None:
        """
        Args:
            nameservers: Override for the host's configured nameservers
            timeout: Per-query lifetime in seconds
        """
        self._nameservers = list(nameservers or [])
        self._timeout = timeout

    def _make_resolver(self, server: Optional[str]) -> dns.asyncresolver.Resolver:
        if server or self._nameservers:
            resolver = dns.asyncresolver.Resolver(configure=False)
            resolver.nameservers = [server] if server else list(self._nameservers)
        else:
            resolver = dns.asyncresolver.Resolver()
        resolver.timeout = self._timeout
        resolver.lifetime = self._timeout
        return resolver

    async def query(
        self,
        name: str,
        record_type: RecordType,
        server: Optional[str] = None,
        transport: Transport = Transport.STANDARD,
    ) -> LookupResult:
        """
        Query one (name, type) pair.

        Args:
            name: Name to query
            record_type: Record type to query
            server: Optional nameserver IP to ask directly
            transport: Transport tag recorded on the result

        Returns:
            LookupResult with FOUND / NOT_FOUND / ERROR status
        """
        start_time = time.perf_counter()
        label = server or ",".join(self._nameservers) or "system"

        def error(code: ResolverErrorCode, message: str) -> LookupResult:
            return LookupResult(
                name=name,
                type=record_type,
                status=LookupStatus.ERROR,
                error=LookupFailure(code=code, message=message),
                transport=transport,
                server=label,
                response_time_ms=self._elapsed_ms(start_time),
            )

        def not_found() -> LookupResult:
            return LookupResult(
                name=fqdn,
                type=record_type,
                status=LookupStatus.NOT_FOUND,
                transport=transport,
                server=label,
                response_time_ms=self._elapsed_ms(start_time),
            )

        try:
            fqdn = normalize_name(name)
        except ValidationError as e:
            return error(ResolverErrorCode.PARSE_ERROR, e.message)

        try:
            resolver = self._make_resolver(server)
            answer = await resolver.resolve(
                fqdn + ".",
                record_type.value,
                search=False,
                raise_on_no_answer=False,
            )
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return not_found()
        except dns.exception.Timeout:
            return error(ResolverErrorCode.TIMEOUT, f"DNS query timed out after {self._timeout}s")
        except dns.resolver.NoNameservers as e:
            return error(ResolverErrorCode.SERVER_ERROR, f"No nameserver answered: {e}")
        except dns.resolver.NoResolverConfiguration as e:
            return error(ResolverErrorCode.NO_NAMESERVERS, f"No resolver configuration: {e}")
        except dns.rdatatype.UnknownRdatatype as e:
            return error(ResolverErrorCode.UNSUPPORTED_TYPE, str(e))
        except dns.exception.DNSException as e:
            return error(ResolverErrorCode.NETWORK_ERROR, f"DNS error: {e}")
        except (OSError, ValueError) as e:
            return error(ResolverErrorCode.NETWORK_ERROR, f"Network error: {e}")

        if answer.rrset is None:
            return not_found()

        ttl = answer.rrset.ttl
        records = []
        for rdata in answer.rrset:
            try:
                payload = rdata_to_payload(record_type, rdata)
            except (ValueError, ValidationError) as e:
                return error(ResolverErrorCode.PARSE_ERROR, f"Unparseable {record_type.value} rdata: {e}")
            records.append(CanonicalRecord(
                name=fqdn,
                type=record_type,
                data=payload,
                ttl=ttl,
                origin=RecordOrigin.ACTUAL,
            ))

        if not records:
            return not_found()

        return LookupResult(
            name=fqdn,
            type=record_type,
            status=LookupStatus.FOUND,
            records=tuple(records),
            transport=transport,
            server=label,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _elapsed_ms(self, start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000
