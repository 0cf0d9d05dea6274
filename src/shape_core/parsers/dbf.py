"""Attribute file (.dbf) decoder."""

import logging
import re
import struct
from dataclasses import dataclass
from datetime import date
from typing import Any

logger = logging.getLogger(__name__)

FIELD_DESCRIPTOR_SIZE = 32
FIELD_TERMINATOR = 0x0D
DELETED_MARKER = 0x2A
TRUE_VALUES = frozenset({"Y", "y", "T", "t"})

_INT_PREFIX = re.compile(r"[+-]?\d+")
_FLOAT_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class FieldDescriptor:
    """A column definition from the attribute file header."""

    name: str
    type: str
    length: int
    decimal: int


def _parse_int(value: str) -> int:
    """Parse the leading integer of ``value``; blank or invalid text gives 0."""
    match = _INT_PREFIX.match(value)
    return int(match.group()) if match else 0


def _parse_float(value: str) -> float:
    """Parse the leading decimal number of ``value``; blank or invalid text gives 0."""
    match = _FLOAT_PREFIX.match(value)
    return float(match.group()) if match else 0.0


def _parse_date(value: str) -> date | None:
    if len(value) != 8 or not value.isdigit():
        return None
    try:
        return date(int(value[:4]), int(value[4:6]), int(value[6:8]))
    except ValueError:
        return None


def convert_value(descriptor: FieldDescriptor, value: str) -> Any:
    """Convert trimmed field text according to its type character."""
    kind = descriptor.type
    if kind == "C":
        return value
    if kind == "N":
        if descriptor.decimal > 0:
            return _parse_float(value)
        return _parse_int(value)
    if kind == "F":
        return _parse_float(value)
    if kind == "L":
        return value in TRUE_VALUES
    if kind == "D":
        return _parse_date(value)
    return value


def read_field_descriptors(data: bytes, encoding: str) -> list[FieldDescriptor]:
    """Read 32-byte field descriptors from offset 32 up to the terminator byte."""
    fields: list[FieldDescriptor] = []
    offset = 32
    while offset < len(data) and data[offset] != FIELD_TERMINATOR:
        raw_name = data[offset : offset + 11].split(b"\x00", 1)[0]
        fields.append(
            FieldDescriptor(
                name=raw_name.decode(encoding, errors="replace").strip(),
                type=chr(data[offset + 11]),
                length=data[offset + 16],
                decimal=data[offset + 17],
            )
        )
        offset += FIELD_DESCRIPTOR_SIZE
    return fields


def decode_attributes(data: bytes, encoding: str = "cp949") -> list[dict[str, Any]]:
    """Decode an attribute file into one dict per live record.

    Records flagged with the delete marker are dropped without decoding
    their fields, so the result aligns with geometry records only when the
    two files agree on deletions.

    Args:
        data: Raw bytes of the .dbf file.
        encoding: Codec for field names and values.

    Returns:
        Attribute dicts in record order.
    """
    num_records, header_length, record_length = struct.unpack_from("<IHH", data, 4)
    fields = read_field_descriptors(data, encoding)
    logger.debug(
        "Attribute header: %d records, %d fields, record length %d",
        num_records,
        len(fields),
        record_length,
    )

    records: list[dict[str, Any]] = []
    offset = header_length
    for index in range(num_records):
        if offset + record_length > len(data):
            logger.warning(
                "Attribute file truncated at record %d of %d", index, num_records
            )
            break

        if data[offset] == DELETED_MARKER:
            offset += record_length
            continue

        record: dict[str, Any] = {}
        field_offset = offset + 1
        for descriptor in fields:
            raw = data[field_offset : field_offset + descriptor.length]
            value = raw.decode(encoding, errors="replace").strip()
            record[descriptor.name] = convert_value(descriptor, value)
            field_offset += descriptor.length

        records.append(record)
        offset += record_length

    return records
