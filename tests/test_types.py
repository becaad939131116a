"""
CID normalisation on wire models
"""
import pytest
from atproto import CID
from pydantic import ValidationError

from firehose_relay.types import CommitEventBody, RepoOp, cid_to_str
from tests.fixtures import cid_for, cid_str, commit_body, encode, post_record

RAW_CID = cid_for(encode(post_record()))


class TestCidToStr:

    def test_link_bytes(self):
        assert cid_to_str(RAW_CID) == cid_str(RAW_CID)

    def test_identity_prefixed_link_bytes(self):
        assert cid_to_str(b"\x00" + RAW_CID) == cid_str(RAW_CID)

    def test_bytearray(self):
        assert cid_to_str(bytearray(RAW_CID)) == cid_str(RAW_CID)

    def test_string_passes_through(self):
        assert cid_to_str(cid_str(RAW_CID)) == cid_str(RAW_CID)
        assert cid_to_str(None) is None

    def test_cid_object(self):
        assert cid_to_str(CID.decode(cid_str(RAW_CID))) == cid_str(RAW_CID)

    @pytest.mark.parametrize("value", [b"\x00\xff\xff", b"\xff", b"\x00"])
    def test_invalid_bytes(self, value):
        with pytest.raises(ValueError):
            cid_to_str(value)


class TestWireModels:

    def test_repo_op_link(self):
        op = RepoOp.model_validate({"action": "create", "path": "p", "cid": b"\x00" + RAW_CID})
        assert op.cid == cid_str(RAW_CID)

    def test_commit_link(self):
        body = commit_body()
        body["commit"] = RAW_CID
        assert CommitEventBody.model_validate(body).commit == cid_str(RAW_CID)

    def test_invalid_op_link_fails_validation(self):
        body = commit_body()
        body["ops"][0]["cid"] = b"\x00\xff\xff"
        with pytest.raises(ValidationError):
            CommitEventBody.model_validate(body)
