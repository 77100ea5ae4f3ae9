"""
DNS-over-HTTPS client.

This module provides an async DoH client using the JSON API
(GET <endpoint>?name=<fqdn>&type=<type>) with TLS enforcement, per-type
parsing of answer data, and error reporting through LookupResult instead of
exceptions.
"""

import time
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .enums import LookupStatus, RecordOrigin, RecordType, ResolverErrorCode, Transport
from .exceptions import ValidationError
from .models import CanonicalRecord, LookupFailure, LookupResult
from .normalizer import normalize_name, parse_rdata


# DNS response codes carried in the JSON "Status" field
RCODE_NOERROR = 0
RCODE_SERVFAIL = 2
RCODE_NXDOMAIN = 3


class DoHClient:
    """
    Async DNS-over-HTTPS client.

    Queries a DoH JSON endpoint, keeps only answers of the requested type
    (CNAME chain entries are skipped) and parses each answer's data with the
    type-specific grammar.
    """

    ACCEPT_HEADER = "application/dns-json"

    def __init__(
        self,
        endpoint: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the DoH client.

        Args:
            endpoint: Default DoH JSON endpoint URL (https only)
            timeout: Per-request timeout in seconds
            client: Optional pre-built httpx client (shared or mocked)
        """
        self._endpoint = endpoint
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "DoHClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,  # TLS certificate verification enforced
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def query(
        self,
        name: str,
        record_type: RecordType,
        endpoint: Optional[str] = None,
    ) -> LookupResult:
        """
        Query a DoH endpoint for one (name, type) pair.

        Args:
            name: Name to query (normalized before sending)
            record_type: Record type to query
            endpoint: Optional endpoint URL overriding the default

        Returns:
            LookupResult with FOUND / NOT_FOUND / ERROR status
        """
        start_time = time.perf_counter()
        url = endpoint or self._endpoint

        try:
            fqdn = normalize_name(name)
        except ValidationError as e:
            return self._error(name, record_type, url, ResolverErrorCode.PARSE_ERROR, e.message, start_time)

        if urlparse(url).scheme.lower() != "https":
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.TLS_ERROR,
                f"DoH endpoint must use HTTPS: {url}", start_time,
            )

        client = self._ensure_client()
        try:
            response = await client.get(
                url,
                params={"name": fqdn, "type": record_type.value},
                headers={"Accept": self.ACCEPT_HEADER},
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.TIMEOUT,
                f"DoH request timed out after {self._timeout}s", start_time,
            )
        except httpx.ConnectError as e:
            error_msg = str(e)
            code = ResolverErrorCode.NETWORK_ERROR
            if "ssl" in error_msg.lower() or "certificate" in error_msg.lower():
                code = ResolverErrorCode.TLS_ERROR
            return self._error(fqdn, record_type, url, code, f"Connection error: {error_msg}", start_time)
        except httpx.HTTPError as e:
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.NETWORK_ERROR,
                f"HTTP error: {e}", start_time,
            )

        if response.status_code != 200:
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.SERVER_ERROR,
                f"DoH server returned HTTP {response.status_code}", start_time,
                http_status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.PARSE_ERROR,
                f"Malformed DoH JSON: {e}", start_time, http_status_code=200,
            )

        return self._parse_payload(fqdn, record_type, url, payload, start_time)

    def _parse_payload(
        self,
        fqdn: str,
        record_type: RecordType,
        url: str,
        payload: Any,
        start_time: float,
    ) -> LookupResult:
        """Turn a DoH JSON document into a LookupResult."""
        if not isinstance(payload, dict) or not isinstance(payload.get("Status"), int):
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.PARSE_ERROR,
                "DoH response has no integer Status field", start_time, http_status_code=200,
            )

        rcode = payload["Status"]
        if rcode == RCODE_NXDOMAIN:
            return self._not_found(fqdn, record_type, url, start_time)
        if rcode != RCODE_NOERROR:
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.SERVER_ERROR,
                f"DoH server answered with rcode {rcode}", start_time, http_status_code=200,
            )

        answers = payload.get("Answer") or []
        if not isinstance(answers, list):
            return self._error(
                fqdn, record_type, url, ResolverErrorCode.PARSE_ERROR,
                "DoH Answer field is not a list", start_time, http_status_code=200,
            )

        records = []
        for answer in answers:
            if not isinstance(answer, dict) or answer.get("type") != record_type.wire_code:
                continue
            try:
                data = parse_rdata(record_type, str(answer.get("data", "")))
            except (ValueError, ValidationError) as e:
                return self._error(
                    fqdn, record_type, url, ResolverErrorCode.PARSE_ERROR,
                    f"Unparseable {record_type.value} answer {answer.get('data')!r}: {e}",
                    start_time, http_status_code=200,
                )
            ttl = answer.get("TTL")
            records.append(CanonicalRecord(
                name=fqdn,  # owner of a CNAME-chained answer is reported under the queried name
                type=record_type,
                data=data,
                ttl=ttl if isinstance(ttl, int) else None,
                origin=RecordOrigin.ACTUAL,
            ))

        if not records:
            return self._not_found(fqdn, record_type, url, start_time)

        return LookupResult(
            name=fqdn,
            type=record_type,
            status=LookupStatus.FOUND,
            records=tuple(records),
            transport=Transport.ENCRYPTED,
            server=url,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _not_found(self, fqdn: str, record_type: RecordType, url: str, start_time: float) -> LookupResult:
        return LookupResult(
            name=fqdn,
            type=record_type,
            status=LookupStatus.NOT_FOUND,
            transport=Transport.ENCRYPTED,
            server=url,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _error(
        self,
        fqdn: str,
        record_type: RecordType,
        url: str,
        code: ResolverErrorCode,
        message: str,
        start_time: float,
        http_status_code: Optional[int] = None,
    ) -> LookupResult:
        return LookupResult(
            name=fqdn,
            type=record_type,
            status=LookupStatus.ERROR,
            error=LookupFailure(code=code, message=message, http_status_code=http_status_code),
            transport=Transport.ENCRYPTED,
            server=url,
            response_time_ms=self._elapsed_ms(start_time),
        )

    def _elapsed_ms(self, start_time: float) -> float:
        """Calculate elapsed time in milliseconds."""
        return (time.perf_counter() - start_time) * 1000

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
        if self._owns_client:
            self._client = None
