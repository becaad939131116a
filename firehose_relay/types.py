"""Type definitions for the firehose relay service."""

from typing import Any, List, Literal, Optional

from atproto import CID
from pydantic import BaseModel, ConfigDict, Field, field_validator


def cid_to_str(value: Any) -> Optional[str]:
    """Normalise a CID link (raw bytes, string or CID object) to its base32 form."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
        if raw[:1] == b"\x00":
            # identity multibase prefix used by DAG-CBOR tag 42
            raw = raw[1:]
        try:
            return str(CID.decode(raw))
        except Exception as e:
            raise ValueError(f"invalid CID bytes: {e}") from e
    return str(value)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EventHeader(_WireModel):
    """Frame header. ``op`` is 1 for messages and -1 for errors."""
    op: Optional[int] = None
    t: Optional[str] = None


class ErrorBody(_WireModel):
    error: Optional[str] = None
    message: Optional[str] = None


class RepoOp(_WireModel):
    action: Literal["create", "update", "delete"]
    path: str
    cid: Optional[str] = None

    @field_validator("cid", mode="before")
    @classmethod
    def _normalise_cid(cls, value: Any) -> Optional[str]:
        return cid_to_str(value)


class CommitEventBody(_WireModel):
    repo: str
    rev: str
    seq: int
    since: Optional[str] = None
    commit: Optional[str] = None
    too_big: bool = Field(default=False, alias="tooBig")
    blocks: bytes = b""
    ops: List[RepoOp] = Field(default_factory=list)

    @field_validator("commit", mode="before")
    @classmethod
    def _normalise_commit(cls, value: Any) -> Optional[str]:
        return cid_to_str(value)

    @field_validator("ops", mode="before")
    @classmethod
    def _none_ops(cls, value: Any) -> Any:
        return [] if value is None else value


class StrongRef(_WireModel):
    uri: str
    cid: Optional[str] = None


class ReplyRef(_WireModel):
    parent: Optional[StrongRef] = None
    root: Optional[StrongRef] = None


class ByteSlice(_WireModel):
    byte_start: int = Field(alias="byteStart")
    byte_end: int = Field(alias="byteEnd")


class Feature(BaseModel):
    """A facet feature. Link features and unknown kinds pass through untouched."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    py_type: str = Field(alias="$type")
    tag: Optional[str] = None
    did: Optional[str] = None

    @property
    def is_tag(self) -> bool:
        return self.py_type.endswith("#tag") and isinstance(self.tag, str)

    @property
    def is_mention(self) -> bool:
        return self.py_type.endswith("#mention") and isinstance(self.did, str)


class Facet(_WireModel):
    index: Optional[ByteSlice] = None
    features: List[Feature] = Field(default_factory=list)


class PostRecord(_WireModel):
    """``app.bsky.feed.post`` record."""
    py_type: str = Field(alias="$type")
    text: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    langs: Optional[List[str]] = None
    reply: Optional[ReplyRef] = None
    facets: Optional[List[Facet]] = None


class ReplyParentUri(BaseModel):
    uri: str


class RelayedReply(BaseModel):
    parent: ReplyParentUri


class RelayedPost(BaseModel):
    """Simplified post forwarded to subscribers as a JSON text frame."""
    model_config = ConfigDict(populate_by_name=True)

    text: str
    did: str
    rev: str
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    reply: Optional[RelayedReply] = None
    tags: List[str] = Field(default_factory=list)
    mentions: List[str] = Field(default_factory=list)
    uri: Optional[str] = None
    cid: Optional[str] = None
    langs: Optional[List[str]] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class VerificationMethod(_WireModel):
    id: str
    type: str
    controller: str
    public_key_multibase: Optional[str] = Field(default=None, alias="publicKeyMultibase")


class DIDService(_WireModel):
    id: str
    type: str
    service_endpoint: Any = Field(alias="serviceEndpoint")


class DIDDocument(_WireModel):
    """DID document as served by the PLC directory."""
    id: str
    context: List[str] = Field(alias="@context", min_length=1)
    also_known_as: List[str] = Field(default_factory=list, alias="alsoKnownAs")
    verification_method: List[VerificationMethod] = Field(default_factory=list, alias="verificationMethod")
    service: List[DIDService] = Field(default_factory=list)

    @property
    def handle(self) -> Optional[str]:
        for aka in self.also_known_as:
            if aka.startswith("at://"):
                return aka[len("at://"):]
        return None
