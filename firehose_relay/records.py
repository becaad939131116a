"""Typed record dispatch and projection to :class:`RelayedPost`.

Each supported record type maps to one projector. A projector receives the
decoded block plus the commit and op it came from, and returns the post to
relay or ``None`` when the record should produce no output.
"""

from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from atproto import models
from pydantic import ValidationError

from .errors import RecordDecodeError, UnsupportedRecordType
from .facets import extract_mentions, extract_tags
from .types import CommitEventBody, PostRecord, RelayedPost, RelayedReply, ReplyParentUri, RepoOp

Projector = Callable[[dict, CommitEventBody, RepoOp], Optional[RelayedPost]]


def build_relayed_post(record: PostRecord, body: CommitEventBody, op: RepoOp) -> Optional[RelayedPost]:
    """Simplify a post record. Posts without text are suppressed."""
    if not record.text:
        return None

    reply = None
    if record.reply is not None and record.reply.parent is not None:
        reply = RelayedReply(parent=ReplyParentUri(uri=record.reply.parent.uri))

    return RelayedPost(
        text=record.text,
        did=body.repo,
        rev=body.rev,
        created_at=record.created_at,
        reply=reply,
        tags=extract_tags(record),
        mentions=extract_mentions(record),
        uri=f"at://{body.repo}/{op.path}",
        cid=op.cid,
        langs=record.langs or None,
    )


def project_post(block: dict, body: CommitEventBody, op: RepoOp) -> Optional[RelayedPost]:
    record = PostRecord.model_validate(block)
    return build_relayed_post(record, body, op)


DEFAULT_PROJECTORS: Mapping[str, Projector] = {
    models.ids.AppBskyFeedPost: project_post,
}


class RecordDecoder:
    """Immutable ``$type`` -> projector table.

    Safe to share between sessions; :meth:`with_record_type` returns a new
    decoder instead of mutating this one.
    """

    def __init__(self, projectors: Optional[Mapping[str, Projector]] = None):
        table = DEFAULT_PROJECTORS if projectors is None else projectors
        self._projectors = MappingProxyType(dict(table))

    @property
    def supported_types(self) -> frozenset:
        return frozenset(self._projectors)

    def with_record_type(self, record_type: str, projector: Projector) -> "RecordDecoder":
        return RecordDecoder({**self._projectors, record_type: projector})

    def decode(self, block: Any, body: CommitEventBody, op: RepoOp) -> Optional[RelayedPost]:
        if not isinstance(block, dict):
            raise RecordDecodeError(f"Record block is {type(block).__name__}, expected a map")

        record_type = block.get("$type")
        projector = self._projectors.get(record_type) if isinstance(record_type, str) else None
        if projector is None:
            raise UnsupportedRecordType(record_type)

        try:
            return projector(block, body, op)
        except ValidationError as e:
            raise RecordDecodeError(f"Invalid {record_type} record: {e.error_count()} error(s)") from e
