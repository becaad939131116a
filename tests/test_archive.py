"""
Block lookup in commit CAR slices
"""
import pytest

from firehose_relay.archive import extract_block
from firehose_relay.errors import ArchiveDecodeError, BlockNotFoundError
from tests.fixtures import car_bytes, cid_for, cid_str, encode, post_record


class TestExtractBlock:

    def test_returns_requested_block(self):
        block = encode(post_record("first"))
        result = extract_block(car_bytes([block]), cid_str(cid_for(block)))
        assert result["text"] == "first"

    def test_never_returns_a_different_block(self):
        blocks = [encode(post_record(f"post {i}")) for i in range(4)]
        archive = car_bytes(blocks)
        for i, block in enumerate(blocks):
            assert extract_block(archive, cid_str(cid_for(block)))["text"] == f"post {i}"

    def test_missing_cid(self):
        present = encode(post_record("present"))
        absent = encode(post_record("absent"))
        with pytest.raises(BlockNotFoundError):
            extract_block(car_bytes([present]), cid_str(cid_for(absent)))

    def test_unparseable_cid(self):
        block = encode(post_record())
        with pytest.raises(BlockNotFoundError):
            extract_block(car_bytes([block]), "not-a-cid")

    @pytest.mark.parametrize("blocks", [b"", b"\x00\x01\x02garbage", encode({"not": "a car"})])
    def test_invalid_archive(self, blocks):
        with pytest.raises(ArchiveDecodeError):
            extract_block(blocks, cid_str(cid_for(b"x")))
