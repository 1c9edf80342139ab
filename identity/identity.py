"""
Intelligible Identity Lifecycle

Coordinates the issuance of an identity token and the reconstruction of an
identity from a token reference. The handle is an immutable value: every
transition returns a new IntelligibleIdentity.

Issuance:
    EMPTY --prepare_new_identity_web3--> RESERVED
          --set_identity_information--> INFO_SET
          --new_identity_meta--> META_BUILT
          --sign_identity--> SIGNED
          --finalize_new_identity_web3--> FINALIZED

Reconstruction:
    from_web3_address / from_web3_token_id / from_nft_did -> LOCATOR_RESOLVED
    from_string_meta -> INFO_SET
    from_string_signature attaches a signature document at any stage

Example:
    >>> identity = IntelligibleIdentity().prepare_new_identity_web3(ledger, main_address)
    >>> identity = identity.set_identity_information(information, references)
    >>> identity = identity.new_identity_meta()
    >>> identity = identity.sign_identity(cid_of_main_xml, is_personal=False)
    >>> identity = identity.finalize_new_identity_web3(f"{root_cid}{directory}main.xml")
"""

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional, Union

from blockchain.ledger import LedgerProvider
from blockchain.nft_did import build_nft_did, parse_nft_did
from blockchain.signatures import sign_data, use_personal_scheme, verify_signed_data
from identity.errors import InvalidArgument, PreconditionFailed
from identity.meta import IdentityMeta
from identity.models import IID_ISSUER, IdentityInformation, Reference, References
from identity.signature_doc import SignatureDocument

logger = logging.getLogger(__name__)


class IdentityStage(str, Enum):
    EMPTY = "empty"
    RESERVED = "reserved"
    INFO_SET = "info_set"
    META_BUILT = "meta_built"
    SIGNED = "signed"
    FINALIZED = "finalized"
    LOCATOR_RESOLVED = "locator_resolved"


def _copy_references(references: Mapping[str, Union[Reference, dict]]) -> References:
    return {key: Reference.model_validate(value).model_copy(deep=True) for key, value in references.items()}


@dataclass(frozen=True)
class IntelligibleIdentity:
    """Working state of an Intelligible Identity."""

    stage: IdentityStage = IdentityStage.EMPTY
    ledger: Optional[LedgerProvider] = None
    main_address: Optional[str] = None
    address: Optional[str] = None
    token_id: Optional[int] = None
    meta: Optional[IdentityMeta] = None
    information: Optional[IdentityInformation] = None
    references: Optional[References] = None
    hash_digest: Optional[str] = None
    signature: Optional[SignatureDocument] = None
    is_personal: bool = True
    token_uri: Optional[str] = None

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def prepare_new_identity_web3(
        self,
        ledger: LedgerProvider,
        main_address: Optional[str] = None,
        address: Optional[str] = None,
    ) -> "IntelligibleIdentity":
        """
        Bind the ledger and reserve a token id for the new identity.

        Args:
            ledger: Ledger provider hosting the identity contract
            main_address: Issuer address or node account index; the ledger
                default account if None
            address: Address (or node account index) the token will be issued
                to; main_address if None

        Returns:
            IntelligibleIdentity in the RESERVED stage (or the current
            information stage if information was attached first)
        """
        if self.token_id is not None:
            raise PreconditionFailed("identity: A token id is already reserved for this identity")
        if self.stage not in (IdentityStage.EMPTY, IdentityStage.INFO_SET, IdentityStage.META_BUILT):
            raise PreconditionFailed(f"identity: Cannot reserve a token in stage {self.stage.value}")

        main = ledger.resolve_address(main_address)
        token_id = ledger.reserve_token_id(main)
        recipient = main if address in (None, "") else ledger.resolve_address(address)

        logger.info(f"Prepared identity token {token_id} (issuer {main}, recipient {recipient})")
        return replace(
            self,
            stage=IdentityStage.RESERVED if self.stage == IdentityStage.EMPTY else self.stage,
            ledger=ledger,
            main_address=main,
            address=recipient,
            token_id=token_id,
        )

    def finalize_new_identity_web3(self, uri: str) -> "IntelligibleIdentity":
        """
        Issue the reserved token pointing at the identity metadata.

        Args:
            uri: Token URI, a content locator of main.xml

        Raises:
            PreconditionFailed: If the identity is not signed or not prepared
        """
        if self.stage != IdentityStage.SIGNED:
            raise PreconditionFailed("identity: You need to sign the identity first")
        if self.ledger is None or not self.main_address or not self.address:
            raise PreconditionFailed("identity: You need to prepare a web3 object first")
        if not uri:
            raise PreconditionFailed("identity: You need to provide a token uri")

        self.ledger.mint_reserved(self.main_address, self.address, self.token_id, uri)
        logger.info(f"Finalized identity token {self.token_id} -> {uri}")
        return replace(self, stage=IdentityStage.FINALIZED, token_uri=uri)

    def set_identity_information(
        self,
        information: Union[IdentityInformation, dict],
        references: Mapping[str, Union[Reference, dict]],
    ) -> "IntelligibleIdentity":
        """Attach a copy of the subject's information and references."""
        if self.information is not None or self.references is not None:
            raise PreconditionFailed("identity: Identity information already set, reset it first")
        if self.stage not in (IdentityStage.EMPTY, IdentityStage.RESERVED):
            raise PreconditionFailed(f"identity: Cannot set information in stage {self.stage.value}")

        return replace(
            self,
            stage=IdentityStage.INFO_SET,
            information=IdentityInformation.model_validate(information).model_copy(deep=True),
            references=_copy_references(references),
        )

    def reset_identity_information(self) -> "IntelligibleIdentity":
        """Drop the information, the metadata document and any signature over it."""
        if self.stage in (IdentityStage.FINALIZED, IdentityStage.LOCATOR_RESOLVED):
            raise PreconditionFailed(f"identity: Cannot reset information in stage {self.stage.value}")

        return replace(
            self,
            stage=IdentityStage.RESERVED if self.token_id is not None else IdentityStage.EMPTY,
            information=None,
            references=None,
            meta=None,
            hash_digest=None,
            signature=None,
        )

    def new_identity_meta(
        self,
        information: Optional[Union[IdentityInformation, dict]] = None,
        references: Optional[Mapping[str, Union[Reference, dict]]] = None,
    ) -> "IntelligibleIdentity":
        """
        Build the metadata document from the attached information.

        Information or references passed here replace the attached ones.

        Raises:
            PreconditionFailed: If no information and references are attached
            MissingRequiredReference: If a reserved reference key is missing
        """
        if self.information is None or self.references is None:
            raise PreconditionFailed("identity: You need to set identity information and references first")
        if self.stage not in (IdentityStage.INFO_SET, IdentityStage.META_BUILT):
            raise PreconditionFailed(f"identity: Cannot build metadata in stage {self.stage.value}")

        information = IdentityInformation.model_validate(information) if information is not None else self.information
        references = _copy_references(references) if references is not None else self.references
        meta = IdentityMeta(information, references)

        return replace(
            self,
            stage=IdentityStage.META_BUILT,
            meta=meta,
            information=meta.information,
            references=meta.references,
            hash_digest=None,
            signature=None,
        )

    def sign_identity(self, hash_digest: str, is_personal=True) -> "IntelligibleIdentity":
        """
        Sign the digest of the serialized metadata document with the issuer key.

        Args:
            hash_digest: Digest of the finalized main.xml (its CID)
            is_personal: Personal-message scheme when True (default)

        Raises:
            PreconditionFailed: If the metadata is not built, the digest is
                missing or no token is reserved
        """
        if self.stage != IdentityStage.META_BUILT or self.meta is None:
            raise PreconditionFailed("identity: You need to build the identity metadata first")
        if not hash_digest:
            raise PreconditionFailed("identity: You need to set identity hash digest first")
        if self.ledger is None or self.token_id is None:
            raise PreconditionFailed("identity: You need to reserve a token first")

        personal = use_personal_scheme(is_personal)
        value = sign_data(self.ledger, hash_digest, self.main_address, personal)

        issuer = self.references[IID_ISSUER]
        signature = SignatureDocument()
        signature.add_signature(issuer.e_id, issuer.entity, int(time.time() * 1000), value)

        logger.info(f"Signed identity token {self.token_id} ({'personal' if personal else 'hash'} scheme)")
        return replace(
            self,
            stage=IdentityStage.SIGNED,
            hash_digest=hash_digest,
            signature=signature,
            is_personal=personal,
        )

    def verify_signature(
        self,
        hash_digest: Optional[str] = None,
        address: Optional[str] = None,
        is_personal=None,
    ) -> bool:
        """
        Check the latest signature against the identity address.

        Args:
            hash_digest: Signed digest; the stored digest if None
            address: Expected signer; the token holder address if None
            is_personal: Signature scheme; the one used for signing if None

        Returns:
            bool: True if the signature recovers to the expected address
        """
        digest = hash_digest or self.hash_digest
        expected = address or self.address
        if not digest:
            raise PreconditionFailed("identity: You need to set identity hash digest first")
        if not expected:
            raise PreconditionFailed("identity: You need to set the web3 address")
        if self.signature is None or not self.signature.signatures:
            raise PreconditionFailed("identity: No signature to verify")

        personal = self.is_personal if is_personal is None else use_personal_scheme(is_personal)
        value = self.signature.signatures[-1].value
        return verify_signed_data(digest, value, expected, personal)

    def get_nft_did(self) -> str:
        """DID of the identity token: did:nft:eip155:<chain>_erc721:<contract>_<token>"""
        if self.ledger is None or self.token_id is None or not self.ledger.contract_address:
            raise PreconditionFailed("identity: You need to prepare a web3 object first")
        return build_nft_did(self.ledger.get_chain_id(), self.ledger.contract_address, self.token_id)

    # ------------------------------------------------------------------
    # Reconstruction
    # ------------------------------------------------------------------

    @classmethod
    def from_web3_address(
        cls,
        ledger: LedgerProvider,
        main_address: Optional[str] = None,
        address: Optional[str] = None,
    ) -> "IntelligibleIdentity":
        """
        Resolve the last identity token issued to an address.

        Args:
            ledger: Ledger provider
            main_address: Address used for operations
            address: Token holder; main_address if None

        Returns:
            IntelligibleIdentity in the LOCATOR_RESOLVED stage, token_uri set
        """
        main = ledger.resolve_address(main_address)
        holder = main if address in (None, "") else ledger.resolve_address(address)
        token_id = ledger.get_token_owner_last_token(holder)
        uri = ledger.get_token_uri(token_id)

        logger.info(f"Resolved identity token {token_id} of {holder}")
        return cls(
            stage=IdentityStage.LOCATOR_RESOLVED,
            ledger=ledger,
            main_address=main,
            address=holder,
            token_id=token_id,
            token_uri=uri,
        )

    @classmethod
    def from_web3_token_id(
        cls,
        ledger: LedgerProvider,
        token_id: int,
        main_address: Optional[str] = None,
    ) -> "IntelligibleIdentity":
        """Resolve an identity token by id."""
        main = ledger.resolve_address(main_address)
        token_id = int(token_id)
        uri = ledger.get_token_uri(token_id)
        holder = ledger.get_token_owner(token_id)

        logger.info(f"Resolved identity token {token_id} of {holder}")
        return cls(
            stage=IdentityStage.LOCATOR_RESOLVED,
            ledger=ledger,
            main_address=main,
            address=holder,
            token_id=token_id,
            token_uri=uri,
        )

    @classmethod
    def from_nft_did(
        cls,
        ledger: LedgerProvider,
        nft_did: str,
        main_address: Optional[str] = None,
    ) -> "IntelligibleIdentity":
        """
        Resolve an identity token from its NFT DID.

        Raises:
            MalformedIdentifier: If nft_did is not an NFT DID
            PreconditionFailed: If the DID belongs to another chain
        """
        parsed = parse_nft_did(nft_did)
        chain_id = ledger.get_chain_id()
        if chain_id != parsed.chain_id:
            raise PreconditionFailed(
                f"identity: NFT DID is on chain {parsed.chain_id}, ledger is on chain {chain_id}"
            )

        current = ledger.contract_address
        if current is None or current.lower() != parsed.contract_address.lower():
            ledger = ledger.at(parsed.contract_address)
        return cls.from_web3_token_id(ledger, parsed.token_id, main_address)

    def from_string_meta(
        self,
        text: str,
        ledger: Optional[LedgerProvider] = None,
        address: Optional[str] = None,
    ) -> "IntelligibleIdentity":
        """
        Load the metadata document and recover information and references.

        Args:
            text: main.xml content
            ledger: Optional ledger to bind; requires address
            address: Identity address when a ledger is given

        Raises:
            PreconditionFailed: If a ledger is given without an address
            InvalidArgument: If the text is not an identity metadata document
        """
        if ledger is not None and address in (None, ""):
            raise PreconditionFailed("identity: You need to set the web3 address")

        meta = IdentityMeta.from_string(text)
        parsed = meta.parse_information_and_references()
        if parsed is None:
            raise InvalidArgument("identity: Metadata document is empty")
        information, references = parsed

        changes = {}
        if ledger is not None:
            changes = {"ledger": ledger, "address": ledger.resolve_address(address)}

        return replace(
            self,
            stage=IdentityStage.INFO_SET,
            meta=meta,
            information=information,
            references=references,
            **changes
        )

    def from_string_signature(self, text: str) -> "IntelligibleIdentity":
        """Attach the signature document loaded from signature.xml."""
        return replace(self, signature=SignatureDocument.from_string(text))
