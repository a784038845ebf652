from datetime import timedelta
from types import SimpleNamespace
import itertools

import pytest

from tibber_pulse.errors import DecodeError
from tibber_pulse.models.sml import SmlMessage
from tibber_pulse.services import sml_decoder
from tibber_pulse.services.sml_decoder import (
    GET_LIST_RESPONSE,
    OPEN_RESPONSE,
    crc16_x25,
    decode_list_entries,
    describe_message,
    parse_sml_file,
    read_value,
    unwrap_transport,
)
from tibber_pulse.tests.fakes import (
    close_response,
    list_entry,
    meter_frame,
    open_response,
    signed,
    sml_frame,
    unsigned,
)


POWER = "01 00 10 07 00 FF"
IMPORT = "01 00 01 08 00 FF"


def test_crc16_x25_check_value():
    assert crc16_x25(b"123456789") == 0x906E


def test_parses_message_sequence_and_tags():
    frame = meter_frame(list_entry(POWER, signed(1500, 4), scaler=-1, unit=27))

    sml_file = parse_sml_file(frame)

    tags = [m.tag for m in sml_file.messages]
    assert tags == [OPEN_RESPONSE, GET_LIST_RESPONSE, 0x0201]
    assert sml_file.messages[1].transaction_id == b"\x11"


def test_decode_list_entries_returns_entries_in_order():
    frame = meter_frame(
        list_entry(IMPORT, unsigned(123456, 8), scaler=-2, unit=30),
        list_entry(POWER, signed(-250, 4), scaler=0, unit=27),
    )

    entries = decode_list_entries(frame)

    assert [e.obj_name.hex() for e in entries] == ["0100010800ff", "0100100700ff"]
    assert entries[0].value == 123456
    assert entries[0].scaler == -2
    assert entries[0].unit == 30
    assert entries[1].value == -250


def test_frame_without_list_response_yields_none():
    frame = sml_frame(open_response(), close_response())

    assert decode_list_entries(frame) is None


def test_leading_garbage_before_start_sequence_is_skipped():
    frame = meter_frame(list_entry(POWER, signed(1, 1)))
    noisy = b"\xde\xad\xbe\xef\x00" + frame

    assert decode_list_entries(noisy)[0].value == 1


def test_absent_scaler_and_octet_value_are_preserved():
    frame = meter_frame(
        list_entry("01 00 00 00 09 FF", b"\x0b" + b"SERIAL0001"),
        list_entry(POWER, signed(42, 2)),
    )

    entries = decode_list_entries(frame)

    assert entries[0].value == b"SERIAL0001"
    assert entries[1].scaler is None
    assert entries[1].unit is None


def test_describe_message_with_and_without_transaction_id():
    sml_file = parse_sml_file(meter_frame(list_entry(POWER, signed(1, 1))))
    anonymous = SmlMessage(None, None, None, 0x0201, None, None)

    assert describe_message(sml_file.messages[1]) == "GET_LIST_RESPONSE txid=11"
    assert describe_message(anonymous) == "CLOSE_RESPONSE txid=-"


def test_decoding_is_repeatable():
    frame = meter_frame(list_entry(POWER, signed(1500, 4), scaler=-1))

    assert decode_list_entries(frame) == decode_list_entries(frame)


# ---------------------------------------------------------------------------
# Transport layer
# ---------------------------------------------------------------------------

def test_escaped_escape_sequence_is_unescaped():
    data = b"\x1b\x1b\x1b\x1b\x01\x02\x03\x04"
    body = (
        sml_decoder.START_SEQUENCE
        + b"\x1b\x1b\x1b\x1b" + data
        + b"\x1b\x1b\x1b\x1b\x1a\x00"
    )
    frame = body + crc16_x25(body).to_bytes(2, "little")

    assert unwrap_transport(frame) == data


def test_padding_is_stripped():
    frame = sml_frame(b"\x01\x02\x03")

    assert unwrap_transport(frame) == b"\x01\x02\x03"


def test_missing_start_sequence_raises():
    with pytest.raises(DecodeError, match="start sequence"):
        parse_sml_file(b"\x00\x01\x02\x03" * 8)


def test_empty_body_raises():
    with pytest.raises(DecodeError):
        parse_sml_file(b"")


def test_bad_checksum_raises():
    frame = meter_frame(list_entry(POWER, signed(1, 1)))
    bad = frame[:-2] + bytes([frame[-2] ^ 0xFF, frame[-1]])

    with pytest.raises(DecodeError, match="checksum"):
        parse_sml_file(bad)


def test_truncated_frame_raises():
    frame = meter_frame(list_entry(POWER, signed(1500, 4), scaler=-1))

    with pytest.raises(DecodeError, match="truncated"):
        parse_sml_file(frame[:-12])


def test_invalid_escape_sequence_raises():
    body = sml_decoder.START_SEQUENCE + b"\x1b\x1b\x1b\x1b\x02\x02\x02\x02"

    with pytest.raises(DecodeError, match="escape"):
        unwrap_transport(body + b"\x00" * 8)


def test_corrupted_message_structure_raises():
    # valid transport, but the payload is a list of two integers
    frame = sml_frame(b"\x72" + unsigned(1) + unsigned(2))

    with pytest.raises(DecodeError, match="malformed SML message"):
        parse_sml_file(frame)


def test_unsupported_type_raises():
    with pytest.raises(DecodeError, match="unsupported SML type"):
        read_value(b"\x22\x00", 0)


def test_excessive_nesting_raises():
    nested = b"\x71" * 40 + b"\x01"

    with pytest.raises(DecodeError, match="nested"):
        read_value(nested, 0)


def test_multi_byte_length_octet_string():
    data = bytes(range(20))
    encoded = bytes([0x81, 0x06]) + data  # 22 bytes including both TL bytes

    value, pos = read_value(encoded, 0)

    assert value == data
    assert pos == len(encoded)


def test_timeout_raises_decode_error(monkeypatch):
    ticks = itertools.count(0.0, 100.0)
    monkeypatch.setattr(sml_decoder, "time", SimpleNamespace(monotonic=lambda: next(ticks)))
    frame = meter_frame(list_entry(POWER, signed(1, 1)))

    with pytest.raises(DecodeError, match="timeout"):
        parse_sml_file(frame, timeout=timedelta(seconds=5))
