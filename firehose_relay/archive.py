"""Block lookup in the CAR slice carried by a commit event."""

from typing import Any

from atproto import CAR, CID

from .errors import ArchiveDecodeError, BlockNotFoundError


def load_archive(blocks: bytes) -> CAR:
    if not blocks:
        raise ArchiveDecodeError("Commit carries no blocks")
    try:
        return CAR.from_bytes(blocks)
    except Exception as e:
        raise ArchiveDecodeError(f"Invalid CAR archive: {e}") from e


def extract_block(blocks: bytes, cid: str) -> Any:
    """Return the block addressed by ``cid``, already decoded from DAG-CBOR.

    Raises :class:`ArchiveDecodeError` when ``blocks`` is not a CAR archive and
    :class:`BlockNotFoundError` when the CID is not in it.
    """
    car = load_archive(blocks)
    try:
        key = CID.decode(cid)
    except Exception as e:
        raise BlockNotFoundError(f"Unparseable CID {cid!r}") from e

    record_raw_data = car.blocks.get(key)
    if record_raw_data is None:
        raise BlockNotFoundError(f"Block {cid} not present in archive")
    return record_raw_data
