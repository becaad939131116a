"""Event stream framing: split a binary frame and classify its header.

A firehose frame is two DAG-CBOR values written back to back with no length
prefix: a small header map followed by the message body map.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

import libipld

from .errors import FrameDecodeError

KNOWN_MESSAGE_TYPES = frozenset({"commit", "account"})


def decode_frame(data: bytes) -> Tuple[dict, dict]:
    """Return ``(header, body)`` decoded from a raw frame.

    Raises :class:`FrameDecodeError` for every kind of failure.
    """
    if not data:
        raise FrameDecodeError("Empty frame")

    try:
        values = libipld.decode_dag_cbor_multi(bytes(data))
    except Exception as e:
        raise FrameDecodeError(f"Invalid DAG-CBOR in frame: {e}") from e

    if len(values) < 2:
        raise FrameDecodeError(f"Expected header and body, got {len(values)} value(s)")

    header, body = values[0], values[1]
    if not isinstance(header, dict) or not isinstance(body, dict):
        raise FrameDecodeError("Frame header and body must both be maps")
    return header, body


class FrameKind(str, Enum):
    KNOWN = "known"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class HeaderClass:
    kind: FrameKind
    type: Optional[str] = None

    @property
    def is_commit(self) -> bool:
        return self.kind is FrameKind.KNOWN and self.type == "commit"


def classify_header(header: Any) -> HeaderClass:
    """Classify a decoded header as a known message, an error or unknown.

    ``t`` is sent in short form with a leading ``#`` (``#commit``); the hash is
    not significant.
    """
    if not isinstance(header, dict):
        return HeaderClass(FrameKind.UNKNOWN)

    op = header.get("op")
    # bool is an int subclass and never a valid op
    if isinstance(op, bool) or not isinstance(op, int):
        return HeaderClass(FrameKind.UNKNOWN)

    if op == -1:
        return HeaderClass(FrameKind.ERROR)

    if op == 1:
        t = header.get("t")
        if isinstance(t, str):
            short = t[1:] if t.startswith("#") else t
            if short in KNOWN_MESSAGE_TYPES:
                return HeaderClass(FrameKind.KNOWN, short)

    return HeaderClass(FrameKind.UNKNOWN)
