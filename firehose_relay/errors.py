"""Exception hierarchy for the relay.

Only :class:`FrameDecodeError` and the upstream socket failures change session
state. Everything deriving from :class:`ValidationSkip` means "no output for
this frame" and is handled at the pipeline boundary.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for relay errors."""


class FrameDecodeError(RelayError):
    """The upstream frame is not two back-to-back DAG-CBOR values.

    Invalid framing cannot be resynchronised, so the upstream connection must
    be dropped.
    """


class ValidationSkip(RelayError):
    """A single frame is dropped; the session stays open."""

    reason = "invalid"


class CommitDecodeError(ValidationSkip):
    reason = "commit_decode"


class ArchiveDecodeError(ValidationSkip):
    reason = "archive_decode"


class BlockNotFoundError(ValidationSkip):
    reason = "block_not_found"


class RecordDecodeError(ValidationSkip):
    reason = "record_decode"


class UnsupportedRecordType(ValidationSkip):
    reason = "unsupported_record"

    def __init__(self, record_type: Optional[str]):
        super().__init__(f"Unsupported record type: {record_type!r}")
        self.record_type = record_type


class UpstreamConnectError(RelayError):
    """The upstream firehose connection could not be established."""


class DIDResolutionError(RelayError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthenticationError(RelayError):
    """The subscriber could not be authenticated."""


class InvalidDIDError(DIDResolutionError):
    """The DID is malformed; no request was made."""
