"""
Issue / Load Workflow Tests

End-to-end identity issuance and loading against the in-memory ledger and
IPFS store.
"""

import json

import pytest

from conftest import PACKAGE_PATH
from identity.errors import InvalidArgument
from identity.identity import IdentityStage
from identity.workflow import issue_identity, load_identity
from ipfs.ipfs_storage import IPFSFile
from ssi.did.did_key import derive_key_identity


@pytest.fixture
def artifacts():
    did_document = derive_key_identity(private_key=b"\x07" * 32)["didDocument"]
    return {
        "iidDIDDoc": IPFSFile("diddoc.json", json.dumps(did_document)),
        "iidIssuerSoftware": IPFSFile(
            "IntelligibleIdentity1.0.1.hashdigest.json", json.dumps({"sha256": "00" * 32})
        ),
        "nftSmartContract": IPFSFile("IntelligibleIdentity.sol", "contract IntelligibleIdentity {}"),
    }


@pytest.fixture
def issued(ledger, store, information, references, artifacts):
    return issue_identity(ledger, store, None, information, references, artifacts)


class TestIssue:

    def test_identity_is_finalized(self, ledger, issued):
        assert issued.stage == IdentityStage.FINALIZED
        assert issued.token_uri.endswith(f"{PACKAGE_PATH}main.xml")
        assert ledger.tokens[issued.token_id][1] == issued.token_uri

    def test_artifact_hrefs_are_content_addressed(self, issued, references):
        for key in ("iidDIDDoc", "iidIssuerSoftware", "nftSmartContract"):
            href = issued.references[key].href
            assert href.startswith("bafy")
            assert href.endswith(references[key].href)
        assert issued.references["eidas"].href == references["eidas"].href

    def test_package_is_stored(self, store, issued):
        root = issued.token_uri.split("/", 1)[0]
        stored = store.directories[root]

        assert set(stored) == {
            f"{PACKAGE_PATH}{name}"
            for name in (
                "diddoc.json",
                "IntelligibleIdentity1.0.1.hashdigest.json",
                "IntelligibleIdentity.sol",
                "main.xml",
                "signature.xml",
            )
        }
        assert stored[f"{PACKAGE_PATH}main.xml"] == issued.meta.finalize()

    def test_signed_digest_is_main_document_cid(self, store, issued):
        main = IPFSFile("main.xml", issued.meta.finalize())
        assert issued.hash_digest == store.get_cids(PACKAGE_PATH, [main])[-1].cid
        assert issued.verify_signature()

    def test_artifact_without_reference(self, ledger, store, information, references, artifacts):
        artifacts["unknown"] = IPFSFile("unknown.txt", "?")
        with pytest.raises(InvalidArgument):
            issue_identity(ledger, store, None, information, references, artifacts)
        assert ledger.reserved == {}


class TestLoad:

    def test_round_trip(self, ledger, store, issued):
        loaded = load_identity(ledger, store, None, issued.get_nft_did())

        assert loaded.token_id == issued.token_id
        assert loaded.information == issued.information
        assert loaded.references == issued.references
        assert loaded.signature.signatures == issued.signature.signatures
        assert loaded.hash_digest == issued.hash_digest

    def test_loaded_signature_verifies(self, ledger, store, issued):
        loaded = load_identity(ledger, store, None, issued.get_nft_did())

        assert loaded.address == issued.address
        assert loaded.verify_signature()
