"""
Record normalization and type-specific comparison.

Every transport and the directory adapter pass their records through this
module so that downstream comparison never special-cases where a record
came from. Normalization is idempotent:

- names and host targets are lower-cased, IDNA-encoded and stripped of
  the trailing dot
- TXT text loses any surrounding quotes
- addresses are rewritten in their compressed form

Record-type dispatch is a closed table over RecordType; the module refuses
to import if a type is left without a payload class or comparison key.
"""

import ipaddress
import re
from dataclasses import asdict, fields
from typing import Any, Callable, Optional

import idna

from .enums import RecordOrigin, RecordType
from .exceptions import ValidationError
from .models import (
    AddressData,
    CanonicalRecord,
    CNAMEData,
    MXData,
    NSData,
    PTRData,
    RecordData,
    SOAData,
    SRVData,
    TXTData,
)


# Forbidden characters in record names (control chars, whitespace, separators)
FORBIDDEN_NAME_CHARS = re.compile(r'[\x00-\x1f\x7f\s!#$%^&()+=\[\]{}|\\:;"\'<>,?/`~]')

# Quoted TXT segment as emitted by DoH providers: "abc" "def"
TXT_SEGMENT_PATTERN = re.compile(r'"((?:[^"\\]|\\.)*)"')

# RFC 1035 escapes inside a character-string: \DDD (decimal byte) or \X
TXT_ESCAPE_PATTERN = re.compile(rb"\\(\d{3}|.)", re.DOTALL)


def normalize_name(name: str) -> str:
    """
    Convert a record name or host target to canonical form.

    Args:
        name: Raw name, possibly with trailing dot, mixed case or Unicode labels

    Returns:
        Lower-case ASCII name without trailing dot ("" for the root)

    Raises:
        ValidationError: If the name contains forbidden characters or
                         cannot be IDNA-encoded
    """
    if name is None:
        raise ValidationError(code="empty_input", message="Name is empty", details={})

    candidate = name.strip().lower().rstrip(".")
    if FORBIDDEN_NAME_CHARS.search(candidate):
        raise ValidationError(
            code="forbidden_chars",
            message=f"Name contains forbidden characters: {name!r}",
            details={"name": name},
        )

    if any(ord(c) > 127 for c in candidate):
        try:
            candidate = idna.encode(candidate, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code="idna_error",
                message=f"IDNA encoding failed: {e}",
                details={"name": name, "idna_error": str(e)},
            )
    return candidate


def fqdn(label: Optional[str], domain: str) -> str:
    """
    Join a relative label onto a domain.

    "@", "" and None mean the apex. A label that already ends with the
    domain is treated as fully qualified.
    """
    base = normalize_name(domain)
    if label is None:
        return base
    relative = normalize_name(label)
    if relative in ("", "@"):
        return base
    if relative == base or relative.endswith("." + base):
        return relative
    return f"{relative}.{base}"


def strip_txt_quotes(text: str) -> str:
    """Remove any number of surrounding quote pairs."""
    value = text
    while len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        value = value[1:-1]
    return value


def normalize_address(address: str) -> str:
    candidate = address.strip()
    try:
        return ipaddress.ip_address(candidate).compressed
    except ValueError:
        return candidate.lower()


def normalize_data(data: RecordData) -> RecordData:
    """Return the canonical form of a payload."""
    if isinstance(data, MXData):
        return MXData(preference=int(data.preference), exchange=normalize_name(data.exchange))
    if isinstance(data, SRVData):
        return SRVData(
            priority=int(data.priority),
            weight=int(data.weight),
            port=int(data.port),
            target=normalize_name(data.target),
        )
    if isinstance(data, TXTData):
        return TXTData(text=strip_txt_quotes(data.text))
    if isinstance(data, AddressData):
        return AddressData(address=normalize_address(data.address))
    if isinstance(data, SOAData):
        return SOAData(
            mname=normalize_name(data.mname),
            rname=normalize_name(data.rname),
            serial=int(data.serial),
            refresh=int(data.refresh),
            retry=int(data.retry),
            expire=int(data.expire),
            minimum=int(data.minimum),
        )
    if isinstance(data, (CNAMEData, NSData, PTRData)):
        return type(data)(target=normalize_name(data.target))
    raise TypeError(f"Unsupported record payload: {type(data).__name__}")


def normalize_record(record: CanonicalRecord) -> CanonicalRecord:
    """Return the canonical form of a record; idempotent."""
    return CanonicalRecord(
        name=normalize_name(record.name),
        type=record.type,
        data=normalize_data(record.data),
        ttl=record.ttl,
        origin=record.origin,
        service=record.service,
        is_optional=record.is_optional,
        legacy=record.legacy,
    )


# Closed dispatch tables


PAYLOAD_TYPES: dict[RecordType, type] = {
    RecordType.MX: MXData,
    RecordType.CNAME: CNAMEData,
    RecordType.TXT: TXTData,
    RecordType.SRV: SRVData,
    RecordType.A: AddressData,
    RecordType.AAAA: AddressData,
    RecordType.NS: NSData,
    RecordType.SOA: SOAData,
    RecordType.PTR: PTRData,
}

_COMPARISON_KEYS: dict[RecordType, Callable[[Any], tuple]] = {
    RecordType.MX: lambda d: (int(d.preference), normalize_name(d.exchange)),
    RecordType.CNAME: lambda d: (normalize_name(d.target),),
    RecordType.TXT: lambda d: (strip_txt_quotes(d.text),),
    RecordType.SRV: lambda d: (
        int(d.priority), int(d.weight), int(d.port), normalize_name(d.target),
    ),
    RecordType.A: lambda d: (normalize_address(d.address),),
    RecordType.AAAA: lambda d: (normalize_address(d.address),),
    RecordType.NS: lambda d: (normalize_name(d.target),),
    RecordType.SOA: lambda d: (
        normalize_name(d.mname), normalize_name(d.rname),
        int(d.serial), int(d.refresh), int(d.retry), int(d.expire), int(d.minimum),
    ),
    RecordType.PTR: lambda d: (normalize_name(d.target),),
}

assert set(PAYLOAD_TYPES) == set(RecordType), "payload table must cover every RecordType"
assert set(_COMPARISON_KEYS) == set(RecordType), "comparison table must cover every RecordType"


def comparison_key(record_type: RecordType, data: RecordData) -> tuple:
    """
    Hashable key under which two payloads of the same type compare equal.

    Raises:
        TypeError: If the payload class does not belong to record_type
    """
    expected_cls = PAYLOAD_TYPES[record_type]
    if not isinstance(data, expected_cls):
        raise TypeError(
            f"{record_type.value} record requires {expected_cls.__name__}, "
            f"got {type(data).__name__}"
        )
    return _COMPARISON_KEYS[record_type](data)


def data_equal(record_type: RecordType, left: RecordData, right: RecordData) -> bool:
    """Type-specific payload equality."""
    return comparison_key(record_type, left) == comparison_key(record_type, right)


def records_equal(left: CanonicalRecord, right: CanonicalRecord) -> bool:
    """True when two records are comparable and their payloads are equal."""
    if normalize_name(left.name) != normalize_name(right.name) or left.type != right.type:
        return False
    return data_equal(left.type, left.data, right.data)


# Presentation-format parsing


def _split_fields(text: str, count: int, record_type: RecordType) -> list[str]:
    parts = text.split()
    if len(parts) != count:
        raise ValueError(
            f"{record_type.value} data must have {count} fields, got {len(parts)}: {text!r}"
        )
    return parts


def _unescape_segment(segment: str) -> bytes:
    """Raw bytes of one quoted segment with \\DDD and \\X escapes resolved."""

    def replace(match: "re.Match[bytes]") -> bytes:
        escaped = match.group(1)
        if escaped.isdigit() and int(escaped) <= 255:
            return bytes([int(escaped)])
        return escaped

    return TXT_ESCAPE_PATTERN.sub(replace, segment.encode("utf-8"))


def parse_txt(text: str) -> str:
    """Concatenate quoted TXT segments; unquoted text is kept as-is."""
    stripped = text.strip()
    segments = TXT_SEGMENT_PATTERN.findall(stripped)
    if segments and TXT_SEGMENT_PATTERN.sub("", stripped).strip() == "":
        return b"".join(_unescape_segment(s) for s in segments).decode("utf-8", errors="replace")
    return strip_txt_quotes(stripped)


def parse_rdata(record_type: RecordType, text: str) -> RecordData:
    """
    Parse presentation-format record data into a normalized payload.

    Handles the DoH JSON grammar, e.g. "10 mx.example.net." for MX and
    "100 1 443 sip.example.net." for SRV.

    Raises:
        ValueError: If the text does not match the grammar for record_type
    """
    if record_type == RecordType.MX:
        preference, exchange = _split_fields(text, 2, record_type)
        return MXData(preference=int(preference), exchange=normalize_name(exchange))
    if record_type == RecordType.SRV:
        priority, weight, port, target = _split_fields(text, 4, record_type)
        return SRVData(
            priority=int(priority),
            weight=int(weight),
            port=int(port),
            target=normalize_name(target),
        )
    if record_type == RecordType.TXT:
        return TXTData(text=parse_txt(text))
    if record_type in (RecordType.A, RecordType.AAAA):
        address = ipaddress.ip_address(text.strip())
        return AddressData(address=address.compressed)
    if record_type == RecordType.SOA:
        mname, rname, *numbers = _split_fields(text, 7, record_type)
        serial, refresh, retry, expire, minimum = (int(n) for n in numbers)
        return SOAData(
            mname=normalize_name(mname),
            rname=normalize_name(rname),
            serial=serial,
            refresh=refresh,
            retry=retry,
            expire=expire,
            minimum=minimum,
        )
    (target,) = _split_fields(text, 1, record_type)
    return PAYLOAD_TYPES[record_type](target=normalize_name(target))


def make_record(
    name: str,
    record_type: RecordType,
    data: RecordData,
    ttl: Optional[int] = None,
    origin: RecordOrigin = RecordOrigin.ACTUAL,
    **extra: Any,
) -> CanonicalRecord:
    """Build an already-normalized record."""
    return normalize_record(CanonicalRecord(
        name=name,
        type=record_type,
        data=data,
        ttl=ttl,
        origin=origin,
        **extra,
    ))


# Dictionary form (baseline documents)


def data_to_dict(data: RecordData) -> dict:
    return asdict(data)


def data_from_dict(record_type: RecordType, raw: dict) -> RecordData:
    """
    Rebuild a payload from its dictionary form.

    Raises:
        ValueError: If required fields are missing
    """
    payload_cls = PAYLOAD_TYPES[record_type]
    names = [f.name for f in fields(payload_cls)]
    missing = [n for n in names if n not in raw]
    if missing:
        raise ValueError(f"{record_type.value} data missing fields: {missing}")
    return payload_cls(**{n: raw[n] for n in names})
