"""
Property-based tests for the Resolver abstraction.

Uses Hypothesis with in-memory transport clients to verify transport
dispatch, fan-out ordering and failure isolation, authoritative discovery
with fallback, and retried one-shot queries.
"""

import asyncio
from io import StringIO
from typing import Optional

import dns.rdata
import dns.rdataclass
import dns.rdatatype
from hypothesis import given, settings
from hypothesis import strategies as st

from dns_reconciler.audit_logger import AuditLogger
from dns_reconciler.config import ResolverConfig, RetryConfig
from dns_reconciler.dns_client import rdata_to_payload
from dns_reconciler.enums import LogLevel, LookupStatus, RecordType, ResolverErrorCode, Transport
from dns_reconciler.models import (
    AddressData,
    CNAMEData,
    LookupFailure,
    LookupResult,
    MXData,
    NSData,
    SOAData,
    SRVData,
    TXTData,
)
from dns_reconciler.normalizer import make_record, parse_rdata
from dns_reconciler.resolver import Resolver
from dns_reconciler.retry_manager import RetryManager


def _found(name: str, record_type: RecordType, *payloads, transport=None, server=None) -> LookupResult:
    return LookupResult(
        name=name,
        type=record_type,
        status=LookupStatus.FOUND,
        records=tuple(make_record(name, record_type, p) for p in payloads),
        transport=transport,
        server=server,
    )


def _not_found(name: str, record_type: RecordType, transport=None, server=None) -> LookupResult:
    return LookupResult(name=name, type=record_type, status=LookupStatus.NOT_FOUND, transport=transport, server=server)


def _error(name: str, record_type: RecordType, code=ResolverErrorCode.TIMEOUT, server=None) -> LookupResult:
    return LookupResult(
        name=name,
        type=record_type,
        status=LookupStatus.ERROR,
        error=LookupFailure(code=code, message=code.value),
        server=server,
    )


class FakeDoHClient:
    """Answers from a {(name, type): LookupResult} table."""

    def __init__(self, answers: Optional[dict] = None) -> None:
        self.answers = answers or {}
        self.calls = []
        self.closed = False

    async def query(self, name, record_type, endpoint=None):
        self.calls.append((name, record_type, endpoint))
        return self.answers.get((name, record_type), _not_found(name, record_type, Transport.ENCRYPTED, endpoint))

    async def close(self):
        self.closed = True


class FakeDNSClient:
    """Answers from a {server: LookupResult or Exception} table."""

    def __init__(self, by_server: Optional[dict] = None) -> None:
        self.by_server = by_server or {}
        self.calls = []

    async def query(self, name, record_type, server=None, transport=Transport.STANDARD):
        self.calls.append((name, record_type, server, transport))
        answer = self.by_server.get(server)
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return _not_found(name, record_type, transport, server)
        return answer


def _resolver(doh=None, dns_client=None, transport=Transport.ENCRYPTED, retry=None, logger=None, concurrency=8):
    return Resolver(
        ResolverConfig(default_transport=transport, max_concurrency=concurrency),
        retry_manager=retry,
        logger=logger,
        doh_client=doh or FakeDoHClient(),
        dns_client=dns_client or FakeDNSClient(),
    )


server_strategy = st.tuples(
    st.integers(1, 223), st.integers(0, 255), st.integers(0, 255), st.integers(1, 254),
).map(lambda t: ".".join(str(p) for p in t))


class TestTransportDispatch:
    """The transport argument selects the client."""

    def test_encrypted_uses_doh_with_endpoint(self) -> None:
        doh = FakeDoHClient()
        resolver = _resolver(doh=doh)

        asyncio.run(resolver.query("contoso.com", RecordType.MX, server="https://dns.google/resolve"))

        assert doh.calls == [("contoso.com", RecordType.MX, "https://dns.google/resolve")]

    def test_standard_uses_dns_client(self) -> None:
        dns_client = FakeDNSClient()
        resolver = _resolver(dns_client=dns_client)

        asyncio.run(resolver.query("contoso.com", RecordType.TXT, transport=Transport.STANDARD, server="1.1.1.1"))

        assert dns_client.calls == [("contoso.com", RecordType.TXT, "1.1.1.1", Transport.STANDARD)]

    def test_authoritative_with_server_queries_it_directly(self) -> None:
        dns_client = FakeDNSClient()
        resolver = _resolver(dns_client=dns_client)

        asyncio.run(resolver.query("contoso.com", RecordType.MX, transport=Transport.AUTHORITATIVE, server="9.9.9.9"))

        assert dns_client.calls == [("contoso.com", RecordType.MX, "9.9.9.9", Transport.AUTHORITATIVE)]

    def test_close_closes_doh_client(self) -> None:
        doh = FakeDoHClient()

        async def run():
            async with _resolver(doh=doh):
                pass

        asyncio.run(run())
        assert doh.closed


class TestFanOutProperty:
    """Property: fan-out returns one result per server, in order, failures isolated."""

    @given(
        servers=st.lists(server_strategy, min_size=1, max_size=8, unique=True),
        outcomes=st.lists(st.sampled_from(["found", "missing", "error", "raise"]), min_size=8, max_size=8),
        concurrency=st.integers(1, 4),
    )
    @settings(max_examples=100)
    def test_fan_out_preserves_order_and_isolates_failures(
        self,
        servers: list,
        outcomes: list,
        concurrency: int,
    ) -> None:
        """
        *For any* server list, fan_out SHALL return exactly one result per
        server in input order, and a failing server SHALL NOT change the
        result of any other server.
        """
        table = {}
        for server, outcome in zip(servers, outcomes):
            if outcome == "found":
                table[server] = _found("contoso.com", RecordType.MX, MXData(0, "mx.example.net"), server=server)
            elif outcome == "error":
                table[server] = _error("contoso.com", RecordType.MX, server=server)
            elif outcome == "raise":
                table[server] = RuntimeError("socket exploded")
        resolver = _resolver(dns_client=FakeDNSClient(table), concurrency=concurrency)

        results = asyncio.run(resolver.fan_out("contoso.com", RecordType.MX, servers, transport=Transport.STANDARD))

        assert [r.server for r in results] == servers
        for server, outcome, entry in zip(servers, outcomes, results):
            if outcome == "found":
                assert entry.result.status == LookupStatus.FOUND
            elif outcome == "missing":
                assert entry.result.status == LookupStatus.NOT_FOUND
            else:
                assert entry.result.status == LookupStatus.ERROR
                assert entry.result.server == server

    def test_unexpected_exception_is_logged(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        resolver = _resolver(dns_client=FakeDNSClient({"1.1.1.1": RuntimeError("boom")}), logger=logger)

        results = asyncio.run(resolver.fan_out("contoso.com", RecordType.MX, ["1.1.1.1"], transport=Transport.STANDARD))

        assert results[0].result.error.code == ResolverErrorCode.NETWORK_ERROR
        assert "boom" in results[0].result.error.message
        assert any(
            e.level == LogLevel.ERROR and e.data.get("error_type") == "RuntimeError" for e in logger.entries
        )


class TestAuthoritativeDiscovery:
    """NS walk, SOA fallback and default-transport fallback."""

    def test_ns_walk_and_direct_query(self) -> None:
        doh = FakeDoHClient({
            ("contoso.com", RecordType.NS): _found(
                "contoso.com", RecordType.NS, NSData("ns2.dns.example"), NSData("ns1.dns.example"),
            ),
            ("ns1.dns.example", RecordType.A): _found("ns1.dns.example", RecordType.A, AddressData("192.0.2.1")),
            ("ns2.dns.example", RecordType.A): _found("ns2.dns.example", RecordType.A, AddressData("192.0.2.2")),
        })
        answer = _found("www.contoso.com", RecordType.MX, MXData(0, "mx.example.net"), server="192.0.2.1")
        dns_client = FakeDNSClient({"192.0.2.1": answer})
        resolver = _resolver(doh=doh, dns_client=dns_client)

        addresses = asyncio.run(resolver.discover_authoritative("www.contoso.com"))
        result = asyncio.run(resolver.query("www.contoso.com", RecordType.MX, transport=Transport.AUTHORITATIVE))

        assert addresses == ["192.0.2.1", "192.0.2.2"]
        assert result is answer
        assert dns_client.calls[0][2] == "192.0.2.1"

    def test_alias_ns_answer_is_not_taken_as_zone(self) -> None:
        doh = FakeDoHClient({
            # a recursive answer for an alias chases the CNAME to the target zone
            ("autodiscover.contoso.com", RecordType.NS): _found(
                "autodiscover.contoso.com", RecordType.NS, NSData("ns1.outlook.example"),
            ),
            ("autodiscover.contoso.com", RecordType.CNAME): _found(
                "autodiscover.contoso.com", RecordType.CNAME, CNAMEData("autodiscover.outlook.example"),
            ),
            ("contoso.com", RecordType.NS): _found("contoso.com", RecordType.NS, NSData("ns1.dns.example")),
            ("ns1.dns.example", RecordType.A): _found("ns1.dns.example", RecordType.A, AddressData("192.0.2.1")),
            ("ns1.outlook.example", RecordType.A): _found(
                "ns1.outlook.example", RecordType.A, AddressData("203.0.113.9"),
            ),
        })
        resolver = _resolver(doh=doh)

        addresses = asyncio.run(resolver.discover_authoritative("autodiscover.contoso.com"))

        assert addresses == ["192.0.2.1"]

    def test_ns_records_owned_by_another_name_are_ignored(self) -> None:
        doh = FakeDoHClient({
            ("www.contoso.com", RecordType.NS): LookupResult(
                name="www.contoso.com",
                type=RecordType.NS,
                status=LookupStatus.FOUND,
                records=(make_record("target.example", RecordType.NS, NSData("ns1.target.example")),),
            ),
            ("contoso.com", RecordType.NS): _found("contoso.com", RecordType.NS, NSData("ns1.dns.example")),
            ("ns1.dns.example", RecordType.A): _found("ns1.dns.example", RecordType.A, AddressData("192.0.2.1")),
            ("ns1.target.example", RecordType.A): _found(
                "ns1.target.example", RecordType.A, AddressData("203.0.113.9"),
            ),
        })
        resolver = _resolver(doh=doh)

        assert asyncio.run(resolver.discover_authoritative("www.contoso.com")) == ["192.0.2.1"]

    def test_unreachable_first_server_moves_to_next(self) -> None:
        doh = FakeDoHClient({
            ("contoso.com", RecordType.NS): _found("contoso.com", RecordType.NS, NSData("ns1.dns.example")),
            ("ns1.dns.example", RecordType.A): _found(
                "ns1.dns.example", RecordType.A, AddressData("192.0.2.1"), AddressData("192.0.2.9"),
            ),
        })
        answer = _not_found("contoso.com", RecordType.SRV, Transport.AUTHORITATIVE, "192.0.2.9")
        dns_client = FakeDNSClient({
            "192.0.2.1": _error("contoso.com", RecordType.SRV, server="192.0.2.1"),
            "192.0.2.9": answer,
        })
        resolver = _resolver(doh=doh, dns_client=dns_client)

        result = asyncio.run(resolver.query("contoso.com", RecordType.SRV, transport=Transport.AUTHORITATIVE))

        assert result is answer

    def test_soa_primary_used_without_ns(self) -> None:
        doh = FakeDoHClient({
            ("contoso.com", RecordType.SOA): LookupResult(
                name="contoso.com",
                type=RecordType.SOA,
                status=LookupStatus.FOUND,
                records=(make_record(
                    "contoso.com", RecordType.SOA,
                    SOAData("ns.primary.example", "hostmaster.contoso.com", 1, 3600, 600, 604800, 300),
                ),),
            ),
            ("ns.primary.example", RecordType.A): _found("ns.primary.example", RecordType.A, AddressData("198.51.100.7")),
        })
        resolver = _resolver(doh=doh)

        assert asyncio.run(resolver.discover_authoritative("contoso.com")) == ["198.51.100.7"]

    def test_discovery_failure_falls_back_with_warning(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        fallback = _found("contoso.com", RecordType.TXT, TXTData("v=spf1 -all"))
        doh = FakeDoHClient({("contoso.com", RecordType.TXT): fallback})
        resolver = _resolver(doh=doh, logger=logger, transport=Transport.AUTHORITATIVE)

        result = asyncio.run(resolver.query("contoso.com", RecordType.TXT))

        assert result is fallback
        assert resolver.discovery_transport == Transport.ENCRYPTED
        warnings = [e for e in logger.entries if e.level == LogLevel.WARN]
        assert warnings and warnings[0].data["fallback"] == "encrypted"


class TestQueryWithRetry:
    """One-shot queries are retried on transient errors only."""

    def test_transient_error_retried_then_annotated(self) -> None:
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        dns_client = FakeDNSClient({"1.1.1.1": _error("contoso.com", RecordType.MX, server="1.1.1.1")})
        retry = RetryManager(RetryConfig(max_retries=2, base_delay_seconds=0.0))
        resolver = _resolver(dns_client=dns_client, retry=retry, logger=logger)

        result = asyncio.run(resolver.query_with_retry(
            "contoso.com", RecordType.MX, transport=Transport.STANDARD, server="1.1.1.1",
        ))

        assert len(dns_client.calls) == 3
        assert result.status == LookupStatus.ERROR
        assert "after 3 attempt(s)" in result.error.message
        assert any(e.level == LogLevel.WARN for e in logger.entries)

    def test_not_found_is_not_retried(self) -> None:
        dns_client = FakeDNSClient()
        retry = RetryManager(RetryConfig(max_retries=5, base_delay_seconds=0.0))
        resolver = _resolver(dns_client=dns_client, retry=retry)

        result = asyncio.run(resolver.query_with_retry("contoso.com", RecordType.MX, transport=Transport.STANDARD))

        assert result.status == LookupStatus.NOT_FOUND
        assert len(dns_client.calls) == 1


class TestRdataConversion:
    """dnspython rdata objects map onto the same payloads as DoH answers."""

    def _rdata(self, record_type: RecordType, text: str):
        return dns.rdata.from_text(dns.rdataclass.IN, dns.rdatatype.from_text(record_type.value), text)

    def test_mx_and_srv(self) -> None:
        assert rdata_to_payload(RecordType.MX, self._rdata(RecordType.MX, "10 Mail.Contoso.com.")) == MXData(10, "mail.contoso.com")
        assert rdata_to_payload(
            RecordType.SRV, self._rdata(RecordType.SRV, "100 1 443 sipdir.online.lync.com."),
        ) == SRVData(100, 1, 443, "sipdir.online.lync.com")

    def test_txt_segments_joined(self) -> None:
        rdata = self._rdata(RecordType.TXT, '"v=spf1 include:" "spf.protection.outlook.com -all"')
        assert rdata_to_payload(RecordType.TXT, rdata) == TXTData("v=spf1 include:spf.protection.outlook.com -all")

    def test_aaaa_compressed(self) -> None:
        rdata = self._rdata(RecordType.AAAA, "2001:db8:0:0:0:0:0:1")
        assert rdata_to_payload(RecordType.AAAA, rdata) == AddressData("2001:db8::1")

    @given(text=st.text(alphabet=st.sampled_from("abcxyz019=:; -éüß€"), max_size=40))
    @settings(max_examples=100)
    def test_txt_escapes_decode_alike_on_both_transports(self, text: str) -> None:
        """
        *For any* TXT text presented with \\DDD escapes for its non-ASCII
        bytes, the DoH parser and the dnspython conversion SHALL agree.
        """
        presented = '"' + "".join(
            chr(b) if 32 <= b < 127 and b not in (0x22, 0x5C) else f"\\{b:03d}"
            for b in text.encode("utf-8")
        ) + '"'

        via_doh = parse_rdata(RecordType.TXT, presented)
        via_dns = rdata_to_payload(RecordType.TXT, self._rdata(RecordType.TXT, presented))

        assert via_doh == via_dns == TXTData(text)

    def test_txt_decimal_escape_example(self) -> None:
        presented = '"caf\\195\\169"'
        assert parse_rdata(RecordType.TXT, presented) == TXTData("café")
        assert rdata_to_payload(RecordType.TXT, self._rdata(RecordType.TXT, presented)) == TXTData("café")
