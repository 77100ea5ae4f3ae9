"""
Expected-record adapter.

Maps the directory API's service-configuration records (untyped field bags
such as {"label", "recordType", "mailExchange", "preference", ...}) onto
CanonicalRecords at the boundary, so no other component inspects upstream
maps. Known-deprecated labels are flagged legacy=True for the reconciler.

Any record the adapter cannot map raises AdapterError: a silently dropped
expected record would corrupt the compliance score.
"""

import json
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from .audit_logger import AuditLogger, LoggingMixin
from .config import DEFAULT_LEGACY_LABELS
from .enums import RecordOrigin, RecordType
from .exceptions import AdapterError, TransportError, ValidationError
from .models import CanonicalRecord, CNAMEData, MXData, RecordData, SRVData, TXTData
from .normalizer import fqdn, make_record, normalize_name
from .retry_manager import RetryManager


@runtime_checkable
class DirectoryClient(Protocol):
    """Upstream source of expected records."""

    async def get_service_configuration_records(self, domain: str) -> list[dict]:
        ...


class HttpDirectoryClient:
    """
    Directory API client over HTTPS.

    Calls GET <base_url>/domains/<domain>/serviceConfigurationRecords with a
    pre-obtained bearer token and follows @odata.nextLink pages. Obtaining the
    token is the caller's concern.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 15.0,
        retry_manager: Optional[RetryManager] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._retry_manager = retry_manager
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "HttpDirectoryClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
            )
            self._owns_client = True
        return self._client

    async def get_service_configuration_records(self, domain: str) -> list[dict]:
        """
        Fetch every service-configuration record for a domain.

        Raises:
            TransportError: If the API could not be reached
            AdapterError: If the API answered with an error status or an
                          unexpected document shape
        """
        url: Optional[str] = f"{self._base_url}/domains/{domain}/serviceConfigurationRecords"
        records: list[dict] = []
        while url:
            page = await self._get_page(url)
            value = page.get("value")
            if not isinstance(value, list):
                raise AdapterError(
                    code="unexpected_shape",
                    message="Directory response has no 'value' list",
                    details={"url": url, "keys": sorted(page)},
                )
            records.extend(value)
            url = page.get("@odata.nextLink")
        return records

    async def _get_page(self, url: str) -> dict:
        if self._retry_manager is None:
            return await self._fetch(url)

        outcome = await self._retry_manager.execute_with_retry(
            lambda: self._fetch(url),
            is_retryable=lambda e: isinstance(e, TransportError),
        )
        if not outcome.success:
            assert outcome.last_error is not None
            raise outcome.last_error
        return outcome.result

    async def _fetch(self, url: str) -> dict:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        try:
            response = await self._ensure_client().get(url, headers=headers, timeout=self._timeout)
        except httpx.TimeoutException:
            raise TransportError(
                code="timeout",
                message=f"Directory request timed out after {self._timeout}s",
                details={"url": url},
            )
        except httpx.HTTPError as e:
            raise TransportError(
                code="network_error",
                message=f"Directory request failed: {e}",
                details={"url": url},
            )

        if response.status_code >= 500 or response.status_code == 429:
            raise TransportError(
                code="server_error",
                message=f"Directory API returned HTTP {response.status_code}",
                details={"url": url, "http_status_code": response.status_code},
            )
        if response.status_code != 200:
            raise AdapterError(
                code="http_error",
                message=f"Directory API returned HTTP {response.status_code}",
                details={"url": url, "http_status_code": response.status_code},
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise AdapterError(
                code="malformed_json",
                message=f"Directory API returned malformed JSON: {e}",
                details={"url": url},
            )
        if not isinstance(payload, dict):
            raise AdapterError(
                code="unexpected_shape",
                message="Directory response is not a JSON object",
                details={"url": url},
            )
        return payload


class JsonFileDirectoryClient:
    """Reads a saved directory response ({"value": [...]} or a bare list) from disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    async def get_service_configuration_records(self, domain: str) -> list[dict]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise AdapterError(
                code="io_error",
                message=f"Cannot read expected records file: {e}",
                details={"path": str(self._path)},
            )
        except json.JSONDecodeError as e:
            raise AdapterError(
                code="malformed_json",
                message=f"Expected records file is not valid JSON: {e}",
                details={"path": str(self._path)},
            )
        if isinstance(payload, dict):
            payload = payload.get("value")
        if not isinstance(payload, list):
            raise AdapterError(
                code="unexpected_shape",
                message="Expected records file must hold a list or {'value': [...]}",
                details={"path": str(self._path)},
            )
        return payload


def _require(raw: dict, key: str, index: int) -> Any:
    value = raw.get(key)
    if value is None or value == "":
        raise AdapterError(
            code="missing_field",
            message=f"Directory record #{index} has no '{key}'",
            details={"index": index, "field": key, "record": raw},
        )
    return value


def _require_int(raw: dict, key: str, index: int) -> int:
    value = _require(raw, key, index)
    if isinstance(value, bool):
        value = None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise AdapterError(
            code="invalid_field",
            message=f"Directory record #{index} field '{key}' is not numeric: {value!r}",
            details={"index": index, "field": key, "record": raw},
        ) from None


class ExpectedRecordAdapter(LoggingMixin):
    """
    Bridges DirectoryClient output into CanonicalRecords.

    Also usable as a baseline record source via fetch_records().
    """

    COMPONENT = "ExpectedRecordAdapter"

    RECORD_TYPE_NAMES = {
        "mx": RecordType.MX,
        "cname": RecordType.CNAME,
        "txt": RecordType.TXT,
        "srv": RecordType.SRV,
    }

    def __init__(
        self,
        directory: DirectoryClient,
        legacy_labels: Optional[list[str]] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Args:
            directory: Upstream directory client
            legacy_labels: Relative labels flagged as deprecated
            logger: Optional audit logger
        """
        self._directory = directory
        self._legacy_labels = {
            normalize_name(label)
            for label in (DEFAULT_LEGACY_LABELS if legacy_labels is None else legacy_labels)
        }
        self._logger = logger

    async def get_expected(self, domain: str) -> list[CanonicalRecord]:
        """
        Fetch and map the expected records for a domain.

        Raises:
            AdapterError: On any record that cannot be mapped
            TransportError: If the directory could not be reached
        """
        raw_records = await self._directory.get_service_configuration_records(domain)
        if not isinstance(raw_records, list):
            raise AdapterError(
                code="unexpected_shape",
                message="Directory client returned a non-list payload",
                details={"domain": domain, "type": type(raw_records).__name__},
            )

        records = [self.map_record(raw, domain, i) for i, raw in enumerate(raw_records)]
        self._log_info(
            self.COMPONENT,
            f"Mapped {len(records)} expected record(s) for {domain}",
            {
                "domain": domain,
                "legacy": sum(1 for r in records if r.legacy),
                "optional": sum(1 for r in records if r.is_optional),
            },
        )
        return records

    async def fetch_records(self, domain: str) -> list[CanonicalRecord]:
        return await self.get_expected(domain)

    def map_record(self, raw: Any, domain: str, index: int = 0) -> CanonicalRecord:
        """Map one upstream field bag to a CanonicalRecord."""
        if not isinstance(raw, dict):
            raise AdapterError(
                code="unexpected_shape",
                message=f"Directory record #{index} is not an object",
                details={"index": index, "type": type(raw).__name__},
            )

        type_name = str(_require(raw, "recordType", index))
        record_type = self.RECORD_TYPE_NAMES.get(type_name.strip().lower())
        if record_type is None:
            raise AdapterError(
                code="unknown_record_type",
                message=f"Directory record #{index} has unsupported recordType {type_name!r}",
                details={"index": index, "recordType": type_name},
            )

        label = str(_require(raw, "label", index))
        data = self._map_data(record_type, raw, index)

        try:
            name = self._record_name(record_type, raw, label, domain)
            relative = self._relative_label(name, domain)
            ttl = raw.get("ttl")
            return make_record(
                name,
                record_type,
                data,
                ttl=int(ttl) if isinstance(ttl, int) and not isinstance(ttl, bool) else None,
                origin=RecordOrigin.EXPECTED,
                service=raw.get("supportedService"),
                is_optional=bool(raw.get("isOptional", False)),
                legacy=relative in self._legacy_labels,
            )
        except ValidationError as e:
            raise AdapterError(
                code="invalid_name",
                message=f"Directory record #{index} has an invalid name: {e.message}",
                details={"index": index, "label": label},
            ) from e

    def _map_data(self, record_type: RecordType, raw: dict, index: int) -> RecordData:
        if record_type == RecordType.MX:
            return MXData(
                preference=_require_int(raw, "preference", index),
                exchange=str(_require(raw, "mailExchange", index)),
            )
        if record_type == RecordType.CNAME:
            return CNAMEData(target=str(_require(raw, "canonicalName", index)))
        if record_type == RecordType.TXT:
            return TXTData(text=str(_require(raw, "text", index)))
        return SRVData(
            priority=_require_int(raw, "priority", index),
            weight=_require_int(raw, "weight", index),
            port=_require_int(raw, "port", index),
            target=str(_require(raw, "nameTarget", index)),
        )

    @staticmethod
    def _record_name(record_type: RecordType, raw: dict, label: str, domain: str) -> str:
        """SRV names are <service>.<protocol>.<label> when upstream splits them out."""
        base = fqdn(label, domain)
        if record_type != RecordType.SRV:
            return base
        service = raw.get("service")
        protocol = raw.get("protocol")
        if service and protocol and not base.startswith(f"{normalize_name(service)}."):
            return normalize_name(f"{service}.{protocol}.{base}")
        return base

    @staticmethod
    def _relative_label(name: str, domain: str) -> str:
        base = normalize_name(domain)
        if name == base:
            return "@"
        if name.endswith("." + base):
            return name[: -(len(base) + 1)]
        return name
