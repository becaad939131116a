from typing import Optional

from pydantic import ValidationError

from .archive import extract_block
from .errors import CommitDecodeError, ValidationSkip
from .filters import CommitFilter
from .framing import FrameKind, classify_header, decode_frame
from .logging_setup import get_logger
from .metrics import frames_skipped_total, frames_total
from .records import RecordDecoder
from .types import CommitEventBody, ErrorBody, RelayedPost

log = get_logger(__name__)


class FirehosePipeline:
    """Turn one upstream frame into at most one :class:`RelayedPost`.

    :class:`~firehose_relay.errors.FrameDecodeError` is the only exception that
    escapes :meth:`process`; every payload-level failure becomes ``None``.
    A pipeline belongs to one session (its filter keeps counters) while the
    record decoder can be shared.
    """

    def __init__(self, record_decoder: RecordDecoder, commit_filter: Optional[CommitFilter] = None):
        self.record_decoder = record_decoder
        self.commit_filter = commit_filter or CommitFilter()
        self.last_seq: Optional[int] = None

    def process(self, data: bytes) -> Optional[RelayedPost]:
        header, body = decode_frame(data)

        header_class = classify_header(header)
        frames_total.labels(kind=header_class.kind.value).inc()

        if header_class.kind is FrameKind.ERROR:
            self._log_error_frame(body)
            return None
        if not header_class.is_commit:
            return None

        try:
            return self._process_commit(body)
        except ValidationSkip as e:
            frames_skipped_total.labels(reason=e.reason).inc()
            log.debug("frame_skipped", reason=e.reason, error=str(e))
            return None

    def _process_commit(self, body: dict) -> Optional[RelayedPost]:
        try:
            commit = CommitEventBody.model_validate(body)
        except ValidationError as e:
            raise CommitDecodeError(f"Invalid commit body: {e.error_count()} error(s)") from e

        # Highest seq seen, reported when the session closes
        if self.last_seq is None or commit.seq > self.last_seq:
            self.last_seq = commit.seq

        if not self.commit_filter.allow(commit):
            return None

        op = self.commit_filter.first_op(commit)
        record_raw_data = extract_block(commit.blocks, op.cid)
        return self.record_decoder.decode(record_raw_data, commit, op)

    @staticmethod
    def _log_error_frame(body: dict) -> None:
        try:
            error = ErrorBody.model_validate(body)
        except ValidationError:
            log.warning("upstream_error_frame", error=None, message=None)
            return
        log.warning("upstream_error_frame", error=error.error, message=error.message)
