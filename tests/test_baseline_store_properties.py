"""
Property-based tests for the Baseline Store.

Uses Hypothesis to verify that snapshots survive a save/load cycle, that
HMAC protection detects tampering, that saves are atomic, and that the live
sweep refuses to capture a partial record set.
"""

import asyncio
import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from hypothesis import given, settings
from hypothesis import strategies as st

from dns_reconciler.baseline_store import (
    FORMAT_NAME,
    BaselineStore,
    LiveRecordSweep,
    RecordSource,
    sweep_types_for_label,
)
from dns_reconciler.config import ResolverConfig
from dns_reconciler.enums import LookupStatus, RecordOrigin, RecordType, ResolverErrorCode
from dns_reconciler.exceptions import PersistenceError, TamperingError, TransportError
from dns_reconciler.models import (
    BaselineSnapshot,
    CanonicalRecord,
    CNAMEData,
    LookupFailure,
    LookupResult,
    MXData,
    SRVData,
    TXTData,
)
from dns_reconciler.normalizer import make_record


DOMAIN = "contoso.com"


# Strategies

@st.composite
def record_strategy(draw) -> CanonicalRecord:
    """Generate normalized baseline records."""
    name = draw(st.sampled_from([DOMAIN, f"autodiscover.{DOMAIN}", f"_sip._tls.{DOMAIN}"]))
    record_type = draw(st.sampled_from([RecordType.MX, RecordType.TXT, RecordType.CNAME, RecordType.SRV]))
    if record_type == RecordType.MX:
        data = MXData(draw(st.integers(0, 65535)), draw(st.sampled_from(["mx1.example.net", "mx2.example.net"])))
    elif record_type == RecordType.TXT:
        data = TXTData(draw(st.text(max_size=60)))
    elif record_type == RecordType.CNAME:
        data = CNAMEData(draw(st.sampled_from(["autodiscover.outlook.com", "mail.contoso.com"])))
    else:
        data = SRVData(
            draw(st.integers(0, 65535)), draw(st.integers(0, 65535)), draw(st.integers(1, 65535)),
            "sipdir.online.lync.com",
        )
    return make_record(
        name,
        record_type,
        data,
        ttl=draw(st.one_of(st.none(), st.integers(0, 86400))),
        origin=RecordOrigin.BASELINE,
        service=draw(st.one_of(st.none(), st.just("Email"))),
        is_optional=draw(st.booleans()),
        legacy=draw(st.booleans()),
    )


@st.composite
def snapshot_strategy(draw) -> BaselineSnapshot:
    return BaselineSnapshot(
        domain=DOMAIN,
        captured_at=draw(st.datetimes(
            min_value=datetime(2000, 1, 1),
            max_value=datetime(2100, 1, 1),
            timezones=st.just(timezone.utc),
        )),
        records=frozenset(draw(st.lists(record_strategy(), max_size=10))),
        source=draw(st.sampled_from(["live", "expected"])),
    )


secret_strategy = st.text(
    alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"),
    min_size=8,
    max_size=32,
)


class StaticSource:
    def __init__(self, records) -> None:
        self.records = records

    async def fetch_records(self, domain: str):
        return self.records


class TestBaselineRoundTripProperty:
    """Property: load(save(s)) == s, with or without an HMAC secret."""

    @given(snapshot=snapshot_strategy(), secret=st.one_of(st.none(), secret_strategy))
    @settings(max_examples=100)
    def test_save_load_round_trip(self, snapshot: BaselineSnapshot, secret) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = BaselineStore(Path(tmpdir), hmac_secret=secret)
            path = store.save(snapshot)

            loaded = store.load(path)
            leftovers = [p.name for p in Path(tmpdir).iterdir() if p.name.endswith(".tmp")]

        assert loaded == snapshot
        assert {r.origin for r in loaded.records} <= {RecordOrigin.BASELINE}
        assert leftovers == []

    @given(snapshot=snapshot_strategy())
    @settings(max_examples=50)
    def test_serialization_is_deterministic(self, snapshot: BaselineSnapshot) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = BaselineStore(Path(tmpdir), hmac_secret="s3cret-value")
            first = store.serialize(snapshot)
            shuffled = BaselineSnapshot(
                domain=snapshot.domain,
                captured_at=snapshot.captured_at,
                records=frozenset(reversed(list(snapshot.records))),
                source=snapshot.source,
            )
            assert store.serialize(shuffled) == first

        document = json.loads(first)
        assert document["format"] == FORMAT_NAME
        assert document["version"] == BaselineStore.VERSION
        assert len(document["hmac"]) == 64


class TestTamperDetectionProperty:
    """Property: any edit to a signed document is detected."""

    @given(snapshot=snapshot_strategy(), secret=secret_strategy)
    @settings(max_examples=50)
    def test_modified_document_raises(self, snapshot: BaselineSnapshot, secret: str) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = BaselineStore(Path(tmpdir), hmac_secret=secret)
            path = store.save(snapshot)
            document = json.loads(path.read_text(encoding="utf-8"))
            document["records"].append({
                "name": f"evil.{DOMAIN}",
                "type": "CNAME",
                "data": {"target": "attacker.example"},
            })
            path.write_text(json.dumps(document), encoding="utf-8")

            try:
                store.load(path)
                assert False, "Expected TamperingError"
            except TamperingError as e:
                assert e.code == "hmac_mismatch"

    def test_wrong_secret_raises(self) -> None:
        snap = BaselineSnapshot(domain=DOMAIN, captured_at=datetime.now(timezone.utc), records=frozenset())
        with tempfile.TemporaryDirectory() as tmpdir:
            path = BaselineStore(Path(tmpdir), hmac_secret="first-secret").save(snap)
            try:
                BaselineStore(Path(tmpdir), hmac_secret="other-secret").load(path)
                assert False, "Expected TamperingError"
            except TamperingError:
                pass

    def test_unsigned_document_rejected_when_secret_configured(self) -> None:
        snap = BaselineSnapshot(domain=DOMAIN, captured_at=datetime.now(timezone.utc), records=frozenset())
        with tempfile.TemporaryDirectory() as tmpdir:
            path = BaselineStore(Path(tmpdir)).save(snap)
            try:
                BaselineStore(Path(tmpdir), hmac_secret="configured").load(path)
                assert False, "Expected TamperingError"
            except TamperingError as e:
                assert e.code == "missing_hmac"

    def test_tampering_error_is_a_persistence_error(self) -> None:
        assert issubclass(TamperingError, PersistenceError)


class TestDocumentValidation:
    """Malformed or foreign documents raise PersistenceError."""

    def _expect(self, text: str, code: str) -> None:
        store = BaselineStore(Path(tempfile.gettempdir()))
        try:
            store.deserialize(text)
            assert False, f"Expected PersistenceError {code}"
        except PersistenceError as e:
            assert e.code == code

    def test_invalid_json(self) -> None:
        self._expect("{", "parse_error")

    def test_foreign_format(self) -> None:
        self._expect(json.dumps({"format": "something-else", "version": 1}), "unknown_format")

    def test_newer_version(self) -> None:
        self._expect(json.dumps({"format": FORMAT_NAME, "version": 99}), "unsupported_version")

    def test_malformed_record(self) -> None:
        self._expect(json.dumps({
            "format": FORMAT_NAME,
            "version": 1,
            "domain": DOMAIN,
            "capturedAt": "2024-01-01T00:00:00+00:00",
            "records": [{"name": DOMAIN, "type": "MX", "data": {"preference": 10}}],
        }), "parse_error")

    def test_unreadable_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            try:
                BaselineStore(Path(tmpdir)).load(Path(tmpdir) / "absent.json")
                assert False, "Expected PersistenceError"
            except PersistenceError as e:
                assert e.code == "io_error"


class TestCaptureAndLatest:
    """Capture from a record source and pick the newest file."""

    def test_capture_normalizes_and_marks_baseline(self) -> None:
        source = StaticSource([
            CanonicalRecord("Contoso.COM.", RecordType.MX, MXData(0, "MX1.example.net.")),
        ])
        with tempfile.TemporaryDirectory() as tmpdir:
            store = BaselineStore(Path(tmpdir))
            snap = asyncio.run(store.capture("Contoso.com", source, source="live"))

        assert isinstance(source, RecordSource)
        assert snap.domain == DOMAIN
        (record,) = snap.records
        assert record.name == DOMAIN
        assert record.data == MXData(0, "mx1.example.net")
        assert record.origin == RecordOrigin.BASELINE
        assert snap.captured_at.tzinfo is not None

    def test_latest_picks_newest_capture(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = BaselineStore(Path(tmpdir))
            assert store.latest(DOMAIN) is None
            older = BaselineSnapshot(DOMAIN, datetime(2024, 1, 1, tzinfo=timezone.utc), frozenset())
            newer = BaselineSnapshot(DOMAIN, datetime(2024, 6, 1, tzinfo=timezone.utc), frozenset())
            store.save(newer)
            store.save(older)
            other = BaselineSnapshot("fabrikam.com", datetime(2025, 1, 1, tzinfo=timezone.utc), frozenset())
            store.save(other)

            latest = store.latest(DOMAIN)

            assert latest is not None
            assert store.load(latest).captured_at == newer.captured_at

    def test_missing_directory_has_no_latest(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            assert BaselineStore(Path(tmpdir) / "never-created").latest(DOMAIN) is None

    def test_save_into_unwritable_location_raises(self) -> None:
        snap = BaselineSnapshot(DOMAIN, datetime(2024, 1, 1, tzinfo=timezone.utc), frozenset())
        with tempfile.TemporaryDirectory() as tmpdir:
            blocker = Path(tmpdir) / "file"
            blocker.write_text("not a directory", encoding="utf-8")
            try:
                BaselineStore(blocker / "baselines").save(snap)
                assert False, "Expected PersistenceError"
            except PersistenceError as e:
                assert e.code == "io_error"


class SweepResolver:
    def __init__(self, answers: dict) -> None:
        self.config = ResolverConfig(max_concurrency=2)
        self.answers = answers
        self.queries = []

    async def query_with_retry(self, name, record_type, transport=None, server=None):
        self.queries.append((name, record_type, server))
        return self.answers.get(
            (name, record_type),
            LookupResult(name=name, type=record_type, status=LookupStatus.NOT_FOUND),
        )


class TestLiveRecordSweep:
    """The live sweep queries a fixed label/type grid."""

    def test_types_per_label(self) -> None:
        assert sweep_types_for_label("@") == [RecordType.MX, RecordType.TXT]
        assert sweep_types_for_label("_sip._tls") == [RecordType.SRV]
        assert sweep_types_for_label("autodiscover") == [RecordType.CNAME]

    def test_sweep_collects_found_records(self) -> None:
        mx = make_record(DOMAIN, RecordType.MX, MXData(0, "mx1.example.net"))
        resolver = SweepResolver({
            (DOMAIN, RecordType.MX): LookupResult(DOMAIN, RecordType.MX, LookupStatus.FOUND, records=(mx,)),
        })
        sweep = LiveRecordSweep(resolver, labels=["@", "autodiscover"], server="192.0.2.53")

        records = asyncio.run(sweep.fetch_records(DOMAIN))

        assert records == [mx]
        assert sorted((n, t.value) for n, t, _ in resolver.queries) == [
            (f"autodiscover.{DOMAIN}", "CNAME"),
            (DOMAIN, "MX"),
            (DOMAIN, "TXT"),
        ]
        assert {s for _, _, s in resolver.queries} == {"192.0.2.53"}

    def test_type_filter(self) -> None:
        sweep = LiveRecordSweep(SweepResolver({}), labels=["@", "_sip._tls"], types=[RecordType.SRV])
        assert sweep.queries(DOMAIN) == [(f"_sip._tls.{DOMAIN}", RecordType.SRV)]

    def test_failed_lookup_aborts_sweep(self) -> None:
        resolver = SweepResolver({
            (DOMAIN, RecordType.TXT): LookupResult(
                DOMAIN, RecordType.TXT, LookupStatus.ERROR,
                error=LookupFailure(code=ResolverErrorCode.TIMEOUT, message="timed out"),
            ),
        })
        try:
            asyncio.run(LiveRecordSweep(resolver, labels=["@"]).fetch_records(DOMAIN))
            assert False, "Expected TransportError"
        except TransportError as e:
            assert e.code == "timeout"
