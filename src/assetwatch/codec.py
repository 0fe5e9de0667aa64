"""Sprite descriptor codec.

A descriptor is a line oriented text file. Each non-blank line describes one
row of numbers, optionally prefixed with a ``label: `` annotation and using
parentheses for grouping::

    pos: (0.0, 0.4), 2.0w

The encoded ``.file`` artifact is an 8 byte header followed by the row-major
payload of little-endian float32 values. Header bytes 0-3 hold the payload
length in bytes (uint32, little-endian); bytes 4-7 are reserved and zero.
"""
from __future__ import annotations

import logging
import math
import os
import re
import struct
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .events import split_filename

logger = logging.getLogger(__name__)

FIELDS_PER_ROW = 6
WIDTH_REFERENCE = 320.0
HEIGHT_REFERENCE = 240.0
OUTPUT_SUFFIX = ".file"

_HEADER = struct.Struct("<I4x")
_FLOAT32 = struct.Struct("<f")
_LABEL_RE = re.compile(r"^[^:]*: ")
_GROUPING_RE = re.compile(r"[()]")
_SEPARATOR_RE = re.compile(r",\s*")


class CodecError(ValueError):
    """Raised when a descriptor cannot be encoded."""

    def __init__(self, message: str, *, row: Optional[int] = None, field: Optional[int] = None):
        location = []
        if row is not None:
            location.append(f"row {row}")
        if field is not None:
            location.append(f"field {field}")
        prefix = f"{', '.join(location)}: " if location else ""
        super().__init__(f"{prefix}{message}")
        self.row = row
        self.field = field


@dataclass
class DescriptorRow:
    line_number: int
    tokens: List[str]


@dataclass
class DescriptorRecord:
    """Parsed descriptor: ordered rows of raw field tokens."""

    rows: List[DescriptorRow] = field(default_factory=list)

    @property
    def field_count(self) -> int:
        return sum(len(row.tokens) for row in self.rows)


def parse_line(line: str) -> List[str]:
    """Strip grouping and label annotations and split a line into tokens."""

    cleaned = _GROUPING_RE.sub("", line.strip())
    cleaned = _LABEL_RE.sub("", cleaned)
    return [token.strip() for token in _SEPARATOR_RE.split(cleaned)]


def parse_descriptor(text: str) -> DescriptorRecord:
    record = DescriptorRecord()
    for line_number, line in enumerate(text.split("\n"), start=1):
        if not line.strip():
            continue
        record.rows.append(DescriptorRow(line_number=line_number, tokens=parse_line(line)))
    return record


def encode_token(token: str, *, row: Optional[int] = None, field: Optional[int] = None) -> float:
    """Apply the width, literal or height rule to a single token."""

    try:
        if token.endswith("w"):
            value = float(token[:-1]) / WIDTH_REFERENCE
        elif "." in token:
            value = float(token)
        else:
            value = 1.0 - float(token) / HEIGHT_REFERENCE
    except ValueError as exc:
        raise CodecError(f"malformed numeric token {token!r}", row=row, field=field) from exc

    if not math.isfinite(value):
        raise CodecError(f"token {token!r} is not a finite number", row=row, field=field)
    try:
        _FLOAT32.pack(value)
    except OverflowError as exc:
        raise CodecError(f"token {token!r} does not fit in a float32", row=row, field=field) from exc
    return value


def encode_descriptor(record: DescriptorRecord, fields_per_row: Optional[int] = FIELDS_PER_ROW) -> bytes:
    """Encode a parsed descriptor into the binary record layout.

    With ``fields_per_row=None`` rows may have any width as long as they all
    agree with the first row.
    """

    expected = fields_per_row
    values: List[float] = []
    for row in record.rows:
        if expected is None:
            expected = len(row.tokens)
        if len(row.tokens) != expected:
            raise CodecError(
                f"expected {expected} fields, found {len(row.tokens)}",
                row=row.line_number,
            )
        for index, token in enumerate(row.tokens, start=1):
            values.append(encode_token(token, row=row.line_number, field=index))

    payload = struct.pack(f"<{len(values)}f", *values)
    return _HEADER.pack(len(payload)) + payload


def decode_payload(data: bytes) -> List[float]:
    """Read the float values back out of an encoded record."""

    if len(data) < _HEADER.size:
        raise CodecError(f"record is {len(data)} bytes, shorter than the header")
    (length,) = _HEADER.unpack_from(data)
    if length % 4 or _HEADER.size + length != len(data):
        raise CodecError(f"header declares {length} payload bytes but record holds {len(data) - _HEADER.size}")
    return list(struct.unpack_from(f"<{length // 4}f", data, _HEADER.size))


def output_path_for(source: Path) -> Path:
    stem, _ = split_filename(source.name)
    return source.parent / f"{stem}{OUTPUT_SUFFIX}"


def transcode_file(source: Path, fields_per_row: Optional[int] = FIELDS_PER_ROW) -> Path:
    """Encode ``source`` and write ``<stem>.file`` next to it.

    The output is written to a temporary file and moved into place, so a
    failure never leaves a truncated artifact behind.
    """

    text = source.read_text()
    data = encode_descriptor(parse_descriptor(text), fields_per_row=fields_per_row)
    destination = output_path_for(source)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{destination.name}.", dir=str(destination.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, destination)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.debug("Wrote %s bytes to %s", len(data), destination)
    return destination
