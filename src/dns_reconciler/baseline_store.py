"""
Baseline Store.

Captures point-in-time record sets for a domain and persists them as
versioned JSON documents, optionally HMAC-protected to detect tampering.
Files are written atomically (temp file in the same directory, fsync, then
rename) so an interrupted capture never leaves a half-written baseline.
"""

import asyncio
import hashlib
import hmac
import json
import os
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .audit_logger import AuditLogger, LoggingMixin
from .enums import RecordOrigin, RecordType, Transport
from .exceptions import PersistenceError, TamperingError, ValidationError
from .models import BaselineSnapshot, CanonicalRecord
from .normalizer import data_from_dict, data_to_dict, fqdn, normalize_name, normalize_record
from .resolver import Resolver


FORMAT_NAME = "dns-reconciler-baseline"

# Labels swept when capturing a live baseline ("@" is the apex)
DEFAULT_SWEEP_LABELS = [
    "@",
    "autodiscover",
    "msoid",
    "enterpriseregistration",
    "enterpriseenrollment",
    "lyncdiscover",
    "sip",
    "_sip._tls",
    "_sipfederationtls._tcp",
]

DEFAULT_SWEEP_TYPES = [RecordType.MX, RecordType.TXT, RecordType.CNAME, RecordType.SRV]


@runtime_checkable
class RecordSource(Protocol):
    """Anything that can list the records of a domain."""

    async def fetch_records(self, domain: str) -> list[CanonicalRecord]:
        ...


def sweep_types_for_label(label: str) -> list[RecordType]:
    """Record types worth asking for at a label."""
    if label in ("", "@"):
        return [RecordType.MX, RecordType.TXT]
    if label.startswith("_"):
        return [RecordType.SRV]
    return [RecordType.CNAME]


class LiveRecordSweep(LoggingMixin):
    """
    Record source that queries a fixed label x type set through the Resolver.

    A lookup that fails with a transport error aborts the sweep: a baseline
    with silently missing records would show up later as false drift.
    """

    COMPONENT = "LiveRecordSweep"

    def __init__(
        self,
        resolver: Resolver,
        labels: Optional[list[str]] = None,
        types: Optional[list[RecordType]] = None,
        transport: Optional[Transport] = None,
        server: Optional[str] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._resolver = resolver
        self._labels = list(DEFAULT_SWEEP_LABELS if labels is None else labels)
        self._types = set(DEFAULT_SWEEP_TYPES if types is None else types)
        self._transport = transport
        self._server = server
        self._logger = logger

    def queries(self, domain: str) -> list[tuple[str, RecordType]]:
        pairs = []
        for label in self._labels:
            name = fqdn(label, domain)
            for record_type in sweep_types_for_label(label):
                if record_type in self._types:
                    pairs.append((name, record_type))
        return pairs

    async def fetch_records(self, domain: str) -> list[CanonicalRecord]:
        """
        Raises:
            TransportError: If any lookup failed after retries
        """
        pairs = self.queries(domain)
        semaphore = asyncio.Semaphore(self._resolver.config.max_concurrency)

        async def lookup(name: str, record_type: RecordType):
            async with semaphore:
                return await self._resolver.query_with_retry(
                    name, record_type, transport=self._transport, server=self._server
                )

        results = await asyncio.gather(*(lookup(n, t) for n, t in pairs))
        records: list[CanonicalRecord] = []
        for result in results:
            records.extend(result.raise_for_error().records)

        self._log_info(
            self.COMPONENT,
            f"Swept {len(pairs)} name/type pair(s) for {domain}, found {len(records)} record(s)",
            {"domain": domain},
        )
        return records


class BaselineStore(LoggingMixin):
    """
    Persistent baseline snapshots.

    One file per capture, named <domain>-<timestamp>.json inside the store
    directory.
    """

    COMPONENT = "BaselineStore"
    VERSION = 1

    def __init__(
        self,
        directory: Path,
        hmac_secret: Optional[str] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the baseline store.

        Args:
            directory: Directory holding baseline files
            hmac_secret: Optional secret; when set, documents are signed on
                         save and verified on load
            logger: Optional audit logger
        """
        self._directory = Path(directory)
        self._hmac_secret = hmac_secret.encode("utf-8") if hmac_secret else None
        self._logger = logger

    @property
    def directory(self) -> Path:
        return self._directory

    async def capture(
        self,
        domain: str,
        record_source: RecordSource,
        source: str = "live",
    ) -> BaselineSnapshot:
        """
        Capture a new snapshot from a record source.

        Args:
            domain: Domain to capture
            record_source: ExpectedRecordAdapter, LiveRecordSweep or any RecordSource
            source: Label stored with the snapshot ("expected" or "live")
        """
        records = await record_source.fetch_records(domain)
        snapshot = BaselineSnapshot(
            domain=normalize_name(domain),
            captured_at=datetime.now(timezone.utc),
            records=frozenset(
                replace(normalize_record(r), origin=RecordOrigin.BASELINE) for r in records
            ),
            source=source,
            version=self.VERSION,
        )
        self._log_info(
            self.COMPONENT,
            f"Captured {len(snapshot.records)} record(s) for {snapshot.domain}",
            {"source": source},
        )
        return snapshot

    def save(self, snapshot: BaselineSnapshot, path: Optional[Path] = None) -> Path:
        """
        Write a snapshot atomically.

        Returns:
            Path of the written file

        Raises:
            PersistenceError: If the file cannot be written
        """
        target = Path(path) if path else self._default_path(snapshot)
        text = self.serialize(snapshot)
        tmp_name: Optional[str] = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=target.parent,
                prefix=f".{target.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write baseline: {e}",
                details={"file_path": str(target)},
            )

        self._log_info(
            self.COMPONENT,
            f"Saved baseline to {target}",
            {"domain": snapshot.domain, "records": len(snapshot.records)},
        )
        return target

    def load(self, path: Path) -> BaselineSnapshot:
        """
        Read and verify a baseline file.

        Raises:
            PersistenceError: If the file cannot be read or parsed
            TamperingError: If HMAC validation fails
        """
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read baseline: {e}",
                details={"file_path": str(path)},
            )
        return self.deserialize(text)

    def latest(self, domain: str) -> Optional[Path]:
        """Most recent baseline file for a domain, if any."""
        if not self._directory.is_dir():
            return None
        candidates = sorted(self._directory.glob(f"{normalize_name(domain)}-*.json"))
        return candidates[-1] if candidates else None

    def serialize(self, snapshot: BaselineSnapshot) -> str:
        """Render a snapshot as a deterministic JSON document."""
        document = {
            "format": FORMAT_NAME,
            "version": snapshot.version,
            "domain": snapshot.domain,
            "capturedAt": snapshot.captured_at.isoformat(),
            "source": snapshot.source,
            "records": [
                self._record_to_dict(r)
                for r in sorted(snapshot.records, key=self._sort_key)
            ],
        }
        if self._hmac_secret:
            document["hmac"] = self.compute_hmac(document)
        return json.dumps(document, indent=2, sort_keys=True) + "\n"

    def deserialize(self, text: str) -> BaselineSnapshot:
        """
        Parse a baseline document.

        Raises:
            PersistenceError: On malformed or unsupported documents
            TamperingError: If the stored HMAC does not match
        """
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse baseline: {e}",
                details={},
            )
        if not isinstance(document, dict) or document.get("format") != FORMAT_NAME:
            raise PersistenceError(
                code="unknown_format",
                message="Document is not a DNS reconciler baseline",
                details={},
            )
        version = document.get("version")
        if not isinstance(version, int) or version > self.VERSION:
            raise PersistenceError(
                code="unsupported_version",
                message=f"Unsupported baseline version: {version!r}",
                details={"supported": self.VERSION},
            )

        self._verify(document)

        try:
            records = frozenset(self._record_from_dict(raw) for raw in document["records"])
            return BaselineSnapshot(
                domain=document["domain"],
                captured_at=datetime.fromisoformat(document["capturedAt"]),
                records=records,
                source=document.get("source", "live"),
                version=version,
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Malformed baseline document: {e}",
                details={"domain": document.get("domain")},
            )

    def compute_hmac(self, document: dict) -> str:
        """HMAC-SHA256 over the canonical JSON of the document, hmac field excluded."""
        assert self._hmac_secret is not None
        body = {k: v for k, v in document.items() if k != "hmac"}
        serialized = json.dumps(body, sort_keys=True, separators=(",", ":"))
        return hmac.new(self._hmac_secret, serialized.encode("utf-8"), hashlib.sha256).hexdigest()

    def _verify(self, document: dict) -> None:
        if not self._hmac_secret:
            return
        stored = document.get("hmac")
        if not isinstance(stored, str):
            raise TamperingError(
                code="missing_hmac",
                message="Baseline is not signed but an HMAC secret is configured",
                details={"domain": document.get("domain")},
            )
        computed = self.compute_hmac(document)
        if not hmac.compare_digest(stored, computed):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - baseline may have been tampered with",
                details={"domain": document.get("domain")},
            )

    def _default_path(self, snapshot: BaselineSnapshot) -> Path:
        stamp = snapshot.captured_at.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        return self._directory / f"{snapshot.domain}-{stamp}.json"

    @classmethod
    def _sort_key(cls, record: CanonicalRecord) -> tuple:
        return (
            record.name,
            record.type.value,
            json.dumps(cls._record_to_dict(record), sort_keys=True),
        )

    @staticmethod
    def _record_to_dict(record: CanonicalRecord) -> dict:
        return {
            "name": record.name,
            "type": record.type.value,
            "ttl": record.ttl,
            "origin": record.origin.value,
            "service": record.service,
            "isOptional": record.is_optional,
            "legacy": record.legacy,
            "data": data_to_dict(record.data),
        }

    @staticmethod
    def _record_from_dict(raw: dict) -> CanonicalRecord:
        record_type = RecordType.parse(raw["type"])
        return CanonicalRecord(
            name=normalize_name(raw["name"]),
            type=record_type,
            data=data_from_dict(record_type, raw["data"]),
            ttl=raw.get("ttl"),
            origin=RecordOrigin(raw.get("origin", RecordOrigin.BASELINE.value)),
            service=raw.get("service"),
            is_optional=bool(raw.get("isOptional", False)),
            legacy=bool(raw.get("legacy", False)),
        )
