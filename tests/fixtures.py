"""
Builders for firehose frames, CAR archives and fake sockets used across tests.

Frames are encoded with libipld. CID links (CBOR tag 42) are spliced in by
hand: the CAR header is written byte by byte, and `link_cids` tags byte
strings of an already encoded body the way the live firehose sends them.
"""
import asyncio
import base64
import hashlib
import re
from typing import List, Optional

import libipld
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

POST_TYPE = "app.bsky.feed.post"
TAG_TYPE = "app.bsky.richtext.facet#tag"
MENTION_TYPE = "app.bsky.richtext.facet#mention"
LINK_TYPE = "app.bsky.richtext.facet#link"

REPO = "did:plc:ewvi7nxzyoun6zhxrhs64oiz"
REV = "3lkev4vtwms24"


def encode(value) -> bytes:
    return libipld.encode_dag_cbor(value)


def cid_for(block: bytes) -> bytes:
    """CIDv1, dag-cbor codec, sha2-256 multihash."""
    return bytes([0x01, 0x71, 0x12, 0x20]) + hashlib.sha256(block).digest()


def cid_str(raw_cid: bytes) -> str:
    return "b" + base64.b32encode(raw_cid).decode("ascii").lower().rstrip("=")


def _varint(n: int) -> bytes:
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def car_bytes(blocks: List[bytes], root: Optional[bytes] = None) -> bytes:
    root = root or cid_for(blocks[0])
    link = b"\x00" + root
    # {"roots": [tag42(link)], "version": 1}, keys in DAG-CBOR order
    header = (
        b"\xa2"
        + b"\x65roots" + b"\x81" + b"\xd8\x2a" + b"\x58" + bytes([len(link)]) + link
        + b"\x67version" + b"\x01"
    )
    out = _varint(len(header)) + header
    for block in blocks:
        raw_cid = cid_for(block)
        out += _varint(len(raw_cid) + len(block)) + raw_cid + block
    return out


def post_record(text="hello", facets=None, reply=None, langs=None, created_at="2024-11-01T12:00:00.000Z"):
    record = {"$type": POST_TYPE, "text": text, "createdAt": created_at}
    if facets is not None:
        record["facets"] = facets
    if reply is not None:
        record["reply"] = reply
    if langs is not None:
        record["langs"] = langs
    return record


def tag_facet(tag: str) -> dict:
    return {"index": {"byteStart": 0, "byteEnd": len(tag) + 1}, "features": [{"$type": TAG_TYPE, "tag": tag}]}


def mention_facet(did: str) -> dict:
    return {"index": {"byteStart": 0, "byteEnd": 5}, "features": [{"$type": MENTION_TYPE, "did": did}]}


def commit_body(record=None, *, action="create", too_big=False, with_cid=True, blocks=None, ops=None, seq=1):
    block = encode(record if record is not None else post_record())
    op = {"action": action, "path": "app.bsky.feed.post/3k2yihcrp6f2c"}
    if with_cid:
        op["cid"] = cid_str(cid_for(block))
    return {
        "repo": REPO,
        "rev": REV,
        "seq": seq,
        "since": None,
        "commit": cid_str(cid_for(block)),
        "tooBig": too_big,
        "blocks": car_bytes([block]) if blocks is None else blocks,
        "ops": [op] if ops is None else ops,
        "time": "2024-11-01T12:00:00.000Z",
    }


def frame(header: dict, body: dict) -> bytes:
    return encode(header) + encode(body)


def commit_frame(record=None, **kwargs) -> bytes:
    return frame({"op": 1, "t": "#commit"}, commit_body(record, **kwargs))


def link_cids(encoded: bytes, raw_cid: bytes) -> bytes:
    """Turn every untagged byte string holding ``0x00 + raw_cid`` into a tag 42 link."""
    link = b"\x00" + raw_cid
    pattern = rb"(?<!\xd8\x2a)" + re.escape(b"\x58" + bytes([len(link)]) + link)
    return re.sub(pattern, lambda m: b"\xd8\x2a" + m.group(0), encoded)


def linked_commit_frame(record=None, **kwargs) -> bytes:
    """Commit frame whose `commit` and op `cid` are CID links rather than strings."""
    raw_cid = cid_for(encode(record if record is not None else post_record()))
    body = commit_body(record, **kwargs)
    body["commit"] = b"\x00" + raw_cid
    for op in body["ops"]:
        if "cid" in op:
            op["cid"] = b"\x00" + raw_cid
    return encode({"op": 1, "t": "#commit"}) + link_cids(encode(body), raw_cid)


class FakeUpstream:
    """Upstream firehose socket that replays frames, then closes or hangs."""

    def __init__(self, frames=(), close_code: Optional[int] = 1000, hang: bool = False):
        self.frames = list(frames)
        self.close_code = close_code
        self.hang = hang
        self.close_calls = []

    async def recv(self):
        await asyncio.sleep(0)
        if self.frames:
            return self.frames.pop(0)
        if self.hang:
            await asyncio.Event().wait()
        if self.close_code is None:
            raise ConnectionClosedError(None, None)
        if self.close_code == 1000:
            raise ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True)
        raise ConnectionClosedError(Close(self.close_code, "bye"), None)

    async def close(self, code=1000, reason=""):
        self.close_calls.append((code, reason))


class FakeSubscriber:
    """Server side of a subscriber WebSocket, as seen by RelaySession."""

    def __init__(self, block_send: bool = False):
        self.accepted = False
        self.sent = []
        self.closed = []
        self.block_send = block_send
        self.incoming = asyncio.Queue()

    async def accept(self):
        self.accepted = True

    async def receive(self):
        return await self.incoming.get()

    async def send_text(self, data: str):
        if self.block_send:
            await asyncio.Event().wait()
        self.sent.append(data)

    async def close(self, code=1000, reason=None):
        self.closed.append((code, reason))

    def say(self, text: str):
        self.incoming.put_nowait({"type": "websocket.receive", "text": text})

    def disconnect(self, code: int = 1000):
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": code})


def connector_for(upstream):
    """Stand-in for websockets.connect that records its call."""
    calls = []

    async def connect(url, **kwargs):
        calls.append((url, kwargs))
        return upstream

    connect.calls = calls
    return connect
