"""
Identity Lifecycle Tests

Drives the IntelligibleIdentity state machine against the in-memory ledger.
"""

from unittest.mock import MagicMock

import pytest
from eth_account import Account

from blockchain.ledger import LedgerProvider
from blockchain.nft_did import parse_nft_did
from conftest import CHAIN_ID, CONTRACT_ADDRESS, FakeLedger
from identity.errors import InvalidArgument, MalformedIdentifier, MissingRequiredReference, PreconditionFailed
from identity.identity import IdentityStage, IntelligibleIdentity

DIGEST = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"
URI = "bafyroot/akn/eu/doc/main.xml"


@pytest.fixture
def reserved(ledger):
    return IntelligibleIdentity().prepare_new_identity_web3(ledger)


@pytest.fixture
def built(reserved, information, references):
    return reserved.set_identity_information(information, references).new_identity_meta()


@pytest.fixture
def signed(built):
    return built.sign_identity(DIGEST, is_personal=False)


class TestIssuance:

    def test_prepare(self, ledger, reserved):
        assert reserved.stage == IdentityStage.RESERVED
        assert reserved.token_id == 1
        assert reserved.main_address == ledger.account.address
        assert reserved.address == reserved.main_address

    def test_prepare_with_recipient(self, ledger):
        recipient = Account.create().address
        identity = IntelligibleIdentity().prepare_new_identity_web3(ledger, address=recipient.lower())
        assert identity.address == recipient

    def test_prepare_with_account_index(self):
        ledger = MagicMock(spec=LedgerProvider)
        ledger.resolve_address.side_effect = lambda address: f"0xaccount{address}"
        ledger.reserve_token_id.return_value = 8

        identity = IntelligibleIdentity().prepare_new_identity_web3(ledger, main_address=1, address=0)

        assert identity.main_address == "0xaccount1"
        assert identity.address == "0xaccount0"

    def test_transitions_return_new_handles(self, ledger):
        empty = IntelligibleIdentity()
        reserved = empty.prepare_new_identity_web3(ledger)

        assert empty.stage == IdentityStage.EMPTY
        assert empty.token_id is None
        assert reserved is not empty

    def test_full_issuance(self, ledger, signed):
        finalized = signed.finalize_new_identity_web3(URI)

        assert finalized.stage == IdentityStage.FINALIZED
        assert finalized.token_uri == URI
        assert ledger.tokens[finalized.token_id] == (finalized.address, URI)

    def test_build_uses_completed_values(self, built):
        assert built.stage == IdentityStage.META_BUILT
        assert built.references["iid"].e_id == "#iid"
        assert built.information is built.meta.information

    def test_signature_entry(self, signed, references):
        record = signed.signature.signatures[0]

        assert signed.stage == IdentityStage.SIGNED
        assert signed.hash_digest == DIGEST
        assert signed.is_personal is False
        assert record.signer_ref == "#iidIssuer"
        assert record.signer_label == references["iidIssuer"].entity
        assert record.timestamp > 1_600_000_000_000

    def test_verify_signature(self, signed):
        assert signed.verify_signature()
        assert signed.verify_signature(is_personal=True)
        assert signed.verify_signature(address=Account.create().address) is False
        assert signed.verify_signature(hash_digest=DIGEST + "x") is False

    def test_non_bool_scheme_defaults_to_personal(self, built):
        signed = built.sign_identity(DIGEST, is_personal="false")
        assert signed.is_personal is True
        assert signed.verify_signature()

    def test_information_before_reservation(self, ledger, information, references):
        identity = IntelligibleIdentity().set_identity_information(information, references)
        identity = identity.prepare_new_identity_web3(ledger)

        assert identity.stage == IdentityStage.INFO_SET
        assert identity.token_id == 1
        assert identity.new_identity_meta().sign_identity(DIGEST).stage == IdentityStage.SIGNED

    def test_get_nft_did(self, signed):
        did = signed.get_nft_did()
        parsed = parse_nft_did(did)

        assert did == f"did:nft:eip155:{CHAIN_ID}_erc721:{CONTRACT_ADDRESS}_{signed.token_id}"
        assert parsed.token_id == signed.token_id


class TestOrdering:

    def test_sign_before_build(self, reserved, information, references):
        identity = reserved.set_identity_information(information, references)
        with pytest.raises(PreconditionFailed):
            identity.sign_identity(DIGEST)

    def test_finalize_before_sign(self, built):
        with pytest.raises(PreconditionFailed):
            built.finalize_new_identity_web3(URI)

    def test_sign_without_digest(self, built):
        with pytest.raises(PreconditionFailed):
            built.sign_identity("")

    def test_sign_without_reservation(self, information, references):
        identity = IntelligibleIdentity().set_identity_information(information, references).new_identity_meta()
        with pytest.raises(PreconditionFailed):
            identity.sign_identity(DIGEST)

    def test_build_without_information(self, reserved):
        with pytest.raises(PreconditionFailed):
            reserved.new_identity_meta()

    def test_build_with_missing_reference(self, reserved, information, references):
        del references["iidIssuer"]
        identity = reserved.set_identity_information(information, references)
        with pytest.raises(MissingRequiredReference):
            identity.new_identity_meta()

    def test_information_set_twice(self, reserved, information, references):
        identity = reserved.set_identity_information(information, references)
        with pytest.raises(PreconditionFailed):
            identity.set_identity_information(information, references)

    def test_reset_information(self, reserved, information, references):
        identity = reserved.set_identity_information(information, references).reset_identity_information()

        assert identity.stage == IdentityStage.RESERVED
        assert identity.information is None
        assert identity.set_identity_information(information, references).stage == IdentityStage.INFO_SET

    def test_reservation_is_not_reentrant(self, ledger, reserved):
        with pytest.raises(PreconditionFailed):
            reserved.prepare_new_identity_web3(ledger)

    def test_finalize_twice(self, signed):
        finalized = signed.finalize_new_identity_web3(URI)
        with pytest.raises(PreconditionFailed):
            finalized.finalize_new_identity_web3(URI)

    def test_verify_without_signature(self, built):
        with pytest.raises(PreconditionFailed):
            built.verify_signature(hash_digest=DIGEST)

    def test_nft_did_without_token(self):
        with pytest.raises(PreconditionFailed):
            IntelligibleIdentity().get_nft_did()


class TestReconstruction:

    @pytest.fixture
    def finalized(self, signed):
        return signed.finalize_new_identity_web3(URI)

    def test_from_web3_address(self, ledger, finalized):
        identity = IntelligibleIdentity.from_web3_address(ledger, address=finalized.address)

        assert identity.stage == IdentityStage.LOCATOR_RESOLVED
        assert identity.token_id == finalized.token_id
        assert identity.token_uri == URI

    def test_from_web3_token_id(self, ledger, finalized):
        identity = IntelligibleIdentity.from_web3_token_id(ledger, str(finalized.token_id))

        assert identity.token_id == finalized.token_id
        assert identity.token_uri == URI
        assert identity.address == finalized.address

    def test_from_nft_did(self, ledger, finalized):
        identity = IntelligibleIdentity.from_nft_did(ledger, finalized.get_nft_did())

        assert identity.ledger is ledger
        assert identity.token_uri == URI

    def test_from_nft_did_other_chain(self, finalized):
        with pytest.raises(PreconditionFailed):
            IntelligibleIdentity.from_nft_did(FakeLedger(chain_id=1), finalized.get_nft_did())

    def test_from_nft_did_malformed(self, ledger):
        with pytest.raises(MalformedIdentifier):
            IntelligibleIdentity.from_nft_did(ledger, "did:nft:eip155:5:broken")

    def test_from_nft_did_rebinds_contract(self):
        other_contract = "0x" + "cd" * 20
        ledger = MagicMock(spec=LedgerProvider)
        ledger.contract_address = CONTRACT_ADDRESS
        ledger.get_chain_id.return_value = CHAIN_ID
        rebound = ledger.at.return_value
        rebound.resolve_address.return_value = "0xmain"
        rebound.get_token_uri.return_value = URI
        rebound.get_token_owner.return_value = "0xholder"

        identity = IntelligibleIdentity.from_nft_did(ledger, f"did:nft:eip155:{CHAIN_ID}_erc721:{other_contract}_3")

        ledger.at.assert_called_once_with(other_contract)
        assert identity.ledger is rebound
        assert identity.token_id == 3
        assert identity.address == "0xholder"

    def test_from_string_meta(self, built):
        identity = IntelligibleIdentity().from_string_meta(built.meta.finalize())

        assert identity.stage == IdentityStage.INFO_SET
        assert identity.information == built.information
        assert identity.references == built.references

    def test_from_string_meta_with_ledger(self, ledger, built):
        holder = Account.create().address
        identity = IntelligibleIdentity().from_string_meta(built.meta.finalize(), ledger, holder.lower())

        assert identity.ledger is ledger
        assert identity.address == holder

    def test_from_string_meta_ledger_without_address(self, ledger, built):
        with pytest.raises(PreconditionFailed):
            IntelligibleIdentity().from_string_meta(built.meta.finalize(), ledger)

    def test_from_string_meta_rejects_garbage(self):
        with pytest.raises(InvalidArgument):
            IntelligibleIdentity().from_string_meta("not xml")

    def test_from_string_signature_and_verify(self, ledger, signed, finalized):
        identity = IntelligibleIdentity.from_nft_did(ledger, finalized.get_nft_did())
        identity = identity.from_string_meta(signed.meta.finalize())
        identity = identity.from_string_signature(signed.signature.finalize())

        assert identity.signature.signatures == signed.signature.signatures
        assert identity.verify_signature(hash_digest=DIGEST)
