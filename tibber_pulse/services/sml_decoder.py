# tibber_pulse/services/sml_decoder.py

"""
SML (Smart Message Language) decoder for frames delivered by the Pulse bridge.

A frame is wrapped in SML transport v1:

    1B 1B 1B 1B 01 01 01 01   start sequence
    ... message data, 4-byte aligned, zero padded ...
    1B 1B 1B 1B 1A pp c1 c2   end sequence, pp padding bytes, CRC-16/X.25

Inside, every value carries a type-length (TL) field. Messages are 6-element
lists whose fourth element is the tagged message body.
"""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Any, List, Optional, Tuple

from tibber_pulse.errors import DecodeError
from tibber_pulse.models.sml import DecodedEntry, GetListResponse, SmlFile, SmlMessage


ESCAPE = b"\x1b\x1b\x1b\x1b"
VERSION_1 = b"\x01\x01\x01\x01"
START_SEQUENCE = ESCAPE + VERSION_1
END_MARKER = 0x1A

# Message body tags
OPEN_RESPONSE = 0x0101
CLOSE_RESPONSE = 0x0201
GET_PROFILE_PACK_RESPONSE = 0x0301
GET_PROFILE_LIST_RESPONSE = 0x0401
GET_PROC_PARAMETER_RESPONSE = 0x0501
GET_LIST_RESPONSE = 0x0701
ATTENTION_RESPONSE = 0xFF01

TAG_NAMES = {
    0x0100: "OPEN_REQUEST",
    OPEN_RESPONSE: "OPEN_RESPONSE",
    0x0200: "CLOSE_REQUEST",
    CLOSE_RESPONSE: "CLOSE_RESPONSE",
    0x0300: "GET_PROFILE_PACK_REQUEST",
    GET_PROFILE_PACK_RESPONSE: "GET_PROFILE_PACK_RESPONSE",
    0x0400: "GET_PROFILE_LIST_REQUEST",
    GET_PROFILE_LIST_RESPONSE: "GET_PROFILE_LIST_RESPONSE",
    0x0500: "GET_PROC_PARAMETER_REQUEST",
    GET_PROC_PARAMETER_RESPONSE: "GET_PROC_PARAMETER_RESPONSE",
    0x0600: "SET_PROC_PARAMETER_REQUEST",
    0x0700: "GET_LIST_REQUEST",
    GET_LIST_RESPONSE: "GET_LIST_RESPONSE",
    ATTENTION_RESPONSE: "ATTENTION_RESPONSE",
}

# TL type nibble (bits 6..4 of the first TL byte)
TYPE_OCTET_STRING = 0x0
TYPE_BOOLEAN = 0x4
TYPE_INTEGER = 0x5
TYPE_UNSIGNED = 0x6
TYPE_LIST = 0x7

MAX_NESTING = 16


class _EndOfMessage:
    def __repr__(self) -> str:
        return "END_OF_MESSAGE"


END_OF_MESSAGE = _EndOfMessage()


def crc16_x25(data: bytes) -> int:
    """CRC-16/X.25 (reflected 0x1021, init and xorout 0xFFFF)."""
    crc = 0xFFFF
    for byte in data:
        crc ^= byte
        for _ in range(8):
            if crc & 0x0001:
                crc = (crc >> 1) ^ 0x8408
            else:
                crc >>= 1
    return crc ^ 0xFFFF


def tag_name(tag: int) -> str:
    return TAG_NAMES.get(tag, f"0x{tag:04X}")


def describe_message(message: SmlMessage) -> str:
    """One-line summary, e.g. 'GET_LIST_RESPONSE txid=11'; an absent id prints as '-'."""
    txid = message.transaction_id.hex() if message.transaction_id else "-"
    return f"{tag_name(message.tag)} txid={txid}"


# ============================================================================
# Transport layer
# ============================================================================

class _Deadline:
    def __init__(self, timeout: Optional[timedelta]):
        self._expires = None
        if timeout is not None:
            self._expires = time.monotonic() + timeout.total_seconds()

    def check(self) -> None:
        if self._expires is not None and time.monotonic() > self._expires:
            raise DecodeError("timeout while parsing SML data")


def unwrap_transport(raw: bytes, deadline: Optional[_Deadline] = None) -> bytes:
    """Return the message data of the first SML transport frame in ``raw``."""
    deadline = deadline or _Deadline(None)

    start = raw.find(START_SEQUENCE)
    if start < 0:
        raise DecodeError("no SML start sequence found")

    pos = start + len(START_SEQUENCE)
    payload = bytearray()

    while True:
        deadline.check()
        if pos + 4 > len(raw):
            raise DecodeError("truncated SML transport frame")

        block = raw[pos:pos + 4]
        if block != ESCAPE:
            payload += block
            pos += 4
            continue

        if pos + 8 > len(raw):
            raise DecodeError("truncated SML escape sequence")

        follow = raw[pos + 4:pos + 8]
        if follow == ESCAPE:
            payload += ESCAPE
            pos += 8
            continue

        if follow[0] == END_MARKER:
            padding = follow[1]
            if padding > 3 or padding > len(payload):
                raise DecodeError(f"invalid SML padding length {padding}")
            if any(payload[len(payload) - padding:]):
                raise DecodeError("non-zero SML padding bytes")
            expected = int.from_bytes(follow[2:4], "little")
            actual = crc16_x25(raw[start:pos + 6])
            if actual != expected:
                raise DecodeError(
                    f"SML checksum mismatch (expected {expected:04X}, calculated {actual:04X})"
                )
            return bytes(payload[:len(payload) - padding])

        if follow == VERSION_1:
            raise DecodeError("unexpected SML start sequence inside frame")

        raise DecodeError(f"invalid SML escape sequence {follow.hex()}")


# ============================================================================
# TL values
# ============================================================================

def _read_tl(buf: bytes, pos: int) -> Tuple[int, int, int]:
    """Return (type, length, tl_size) of the TL field at ``pos``."""
    if pos >= len(buf):
        raise DecodeError("truncated SML data: missing type-length field")

    byte = buf[pos]
    value_type = (byte >> 4) & 0x07
    length = byte & 0x0F
    size = 1

    while byte & 0x80:
        if pos + size >= len(buf):
            raise DecodeError("truncated SML data: incomplete type-length field")
        byte = buf[pos + size]
        if byte & 0x70:
            raise DecodeError(f"invalid SML type-length continuation byte 0x{byte:02X}")
        length = (length << 4) | (byte & 0x0F)
        size += 1

    return value_type, length, size


def read_value(buf: bytes, pos: int, deadline: Optional[_Deadline] = None, depth: int = 0) -> Tuple[Any, int]:
    """Decode one TL-encoded value starting at ``pos``; return (value, next_pos)."""
    if depth > MAX_NESTING:
        raise DecodeError("SML lists nested too deeply")
    deadline = deadline or _Deadline(None)

    if pos < len(buf) and buf[pos] == 0x00:
        return END_OF_MESSAGE, pos + 1

    value_type, length, size = _read_tl(buf, pos)

    if value_type == TYPE_LIST:
        deadline.check()
        items = []
        pos += size
        for _ in range(length):
            item, pos = read_value(buf, pos, deadline, depth + 1)
            items.append(item)
        return items, pos

    if length < size:
        raise DecodeError(f"invalid SML length {length} at offset {pos}")
    end = pos + length
    if end > len(buf):
        raise DecodeError("truncated SML data: value exceeds buffer")
    data = buf[pos + size:end]

    if value_type == TYPE_OCTET_STRING:
        # a bare TL byte (0x01) marks an optional value that is not set
        if length == 1:
            return None, end
        return bytes(data), end

    if value_type == TYPE_BOOLEAN:
        if len(data) != 1:
            raise DecodeError(f"invalid SML boolean length {len(data)}")
        return data[0] != 0, end

    if value_type in (TYPE_INTEGER, TYPE_UNSIGNED):
        if not 1 <= len(data) <= 8:
            raise DecodeError(f"invalid SML integer length {len(data)}")
        return int.from_bytes(data, "big", signed=value_type == TYPE_INTEGER), end

    raise DecodeError(f"unsupported SML type 0x{value_type:X} at offset {pos}")


# ============================================================================
# Messages
# ============================================================================

def _optional_int(value: Any, what: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"SML {what} is not an integer")
    return value


def _optional_bytes(value: Any, what: str) -> Optional[bytes]:
    if value is None:
        return None
    if not isinstance(value, bytes):
        raise DecodeError(f"SML {what} is not an octet string")
    return value


def _to_message(raw_message: Any) -> SmlMessage:
    if not isinstance(raw_message, list) or len(raw_message) != 6:
        raise DecodeError("malformed SML message: expected a list of 6 elements")

    transaction_id, group_no, abort_on_error, body, crc, end = raw_message
    if end is not END_OF_MESSAGE:
        raise DecodeError("malformed SML message: missing end of message")
    if not isinstance(body, list) or len(body) != 2:
        raise DecodeError("malformed SML message body")

    tag = _optional_int(body[0], "message body tag")
    if tag is None:
        raise DecodeError("malformed SML message body: missing tag")

    return SmlMessage(
        transaction_id=_optional_bytes(transaction_id, "transaction id"),
        group_no=_optional_int(group_no, "group number"),
        abort_on_error=_optional_int(abort_on_error, "abort on error"),
        tag=tag,
        body=body[1],
        crc=_optional_int(crc, "message crc"),
    )


def parse_messages(data: bytes, deadline: Optional[_Deadline] = None) -> List[SmlMessage]:
    deadline = deadline or _Deadline(None)
    messages: List[SmlMessage] = []
    pos = 0

    while pos < len(data):
        deadline.check()
        # some meters pad between messages with fill bytes
        if data[pos] == 0x00:
            pos += 1
            continue
        raw_message, pos = read_value(data, pos, deadline)
        messages.append(_to_message(raw_message))

    if not messages:
        raise DecodeError("SML frame contains no messages")
    return messages


def parse_sml_file(raw: bytes, timeout: Optional[timedelta] = None) -> SmlFile:
    """Decode the first SML transport frame found in ``raw``."""
    deadline = _Deadline(timeout)
    data = unwrap_transport(bytes(raw), deadline)
    return SmlFile(messages=parse_messages(data, deadline))


# ============================================================================
# List response
# ============================================================================

def _to_list_entry(raw_entry: Any) -> DecodedEntry:
    if not isinstance(raw_entry, list) or len(raw_entry) != 7:
        raise DecodeError("malformed SML list entry: expected a list of 7 elements")

    obj_name, status, _val_time, unit, scaler, value, _signature = raw_entry
    obj_name = _optional_bytes(obj_name, "object name")
    if obj_name is None:
        raise DecodeError("malformed SML list entry: missing object name")
    if isinstance(value, list) or value is END_OF_MESSAGE:
        raise DecodeError("malformed SML list entry: unsupported value")

    return DecodedEntry(
        obj_name=obj_name,
        status=_optional_int(status, "entry status"),
        unit=_optional_int(unit, "entry unit"),
        scaler=_optional_int(scaler, "entry scaler"),
        value=value,
    )


def to_list_response(body: Any) -> GetListResponse:
    if not isinstance(body, list) or len(body) != 7:
        raise DecodeError("malformed SML get list response: expected a list of 7 elements")

    client_id, server_id, list_name, _sensor_time, val_list, _signature, _gateway_time = body
    if not isinstance(val_list, list):
        raise DecodeError("malformed SML get list response: value list missing")

    return GetListResponse(
        client_id=_optional_bytes(client_id, "client id"),
        server_id=_optional_bytes(server_id, "server id"),
        list_name=_optional_bytes(list_name, "list name"),
        entries=[_to_list_entry(entry) for entry in val_list],
    )


def find_list_response(messages: List[SmlMessage]) -> Optional[GetListResponse]:
    """Return the first get-list response, or None if the frame carries none."""
    for message in messages:
        if message.tag == GET_LIST_RESPONSE:
            return to_list_response(message.body)
    return None


def decode_list_entries(raw: bytes, timeout: Optional[timedelta] = None) -> Optional[List[DecodedEntry]]:
    """
    Decode ``raw`` and return the entries of its get-list response.

    Returns None when the frame is valid but holds no list response.
    Raises DecodeError when the frame is malformed.
    """
    response = find_list_response(parse_sml_file(raw, timeout).messages)
    if response is None:
        return None
    return response.entries
