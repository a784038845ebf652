# tibber_pulse/models/sml.py
from dataclasses import dataclass
from typing import Any, List, Optional, Union

SmlValue = Union[int, bytes, bool, None]


@dataclass(frozen=True)
class DecodedEntry:
    obj_name: bytes           # 6-byte OBIS identifier
    status: Optional[int]
    unit: Optional[int]       # DLMS unit code (27 = W, 30 = Wh)
    scaler: Optional[int]     # power of ten applied to value
    value: SmlValue


@dataclass(frozen=True)
class GetListResponse:
    client_id: Optional[bytes]
    server_id: Optional[bytes]
    list_name: Optional[bytes]
    entries: List[DecodedEntry]


@dataclass(frozen=True)
class SmlMessage:
    transaction_id: Optional[bytes]
    group_no: Optional[int]
    abort_on_error: Optional[int]
    tag: int
    body: Any                 # raw decoded choice, interpreted per tag
    crc: Optional[int]


@dataclass(frozen=True)
class SmlFile:
    messages: List[SmlMessage]
