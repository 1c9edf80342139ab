"""
Identity Issue / Load Workflow

End-to-end flow tying the lifecycle to IPFS:

1. Reserve an identity token id
2. Hash each referenced artifact (DID document, software digest, smart
   contract source...) into the package directory and prefix the
   reference href with its CID
3. Build main.xml and sign its CID
4. Write signature.xml next to it and pin the whole directory
5. Mint the token with <root cid><directory>main.xml as its URI

Loading reverses it: resolve the token URI from an NFT DID, fetch main.xml
and the sibling signature.xml, and rebuild the identity.
"""

import logging
from dataclasses import replace
from typing import Mapping, Optional, Union

from blockchain.ledger import LedgerProvider
from identity.errors import InvalidArgument
from identity.identity import IntelligibleIdentity
from identity.meta import identity_directory
from identity.models import IdentityInformation, Reference
from ipfs.ipfs_storage import IPFSFile, IPFSStore

logger = logging.getLogger(__name__)

MAIN_DOCUMENT = "main.xml"
SIGNATURE_DOCUMENT = "signature.xml"


def file_cid(store: IPFSStore, directory: str, file: IPFSFile) -> str:
    """CID of a single file wrapped in the package directory."""
    return store.get_cids(directory, [file])[-1].cid


def issue_identity(
    ledger: LedgerProvider,
    store: IPFSStore,
    main_address: Optional[str],
    information: Union[IdentityInformation, dict],
    references: Mapping[str, Union[Reference, dict]],
    artifacts: Mapping[str, IPFSFile],
    address: Optional[str] = None,
    is_personal=False,
) -> IntelligibleIdentity:
    """
    Issue a new Intelligible Identity.

    Args:
        ledger: Ledger provider hosting the identity contract
        store: IPFS store for the identity package
        main_address: Issuer address (ledger default account if None)
        information: Subject information
        references: References keyed by relationship name
        artifacts: Files stored with the package, keyed by the reference
                   they back (e.g. {"iidDIDDoc": IPFSFile("diddoc.json", ...)})
        address: Token recipient; the issuer if None
        is_personal: Signature scheme used for main.xml

    Returns:
        IntelligibleIdentity in the FINALIZED stage
    """
    information = IdentityInformation.model_validate(information)
    references = {key: Reference.model_validate(value).model_copy(deep=True) for key, value in references.items()}
    directory = identity_directory(information)

    unknown = [key for key in artifacts if key not in references]
    if unknown:
        raise InvalidArgument(f"Artifacts without a matching reference: {', '.join(unknown)}")

    identity = IntelligibleIdentity().prepare_new_identity_web3(ledger, main_address, address)

    files = []
    for key, artifact in artifacts.items():
        reference = references[key]
        href = reference.href or f"{directory}{artifact.path}"
        reference.href = f"{file_cid(store, directory, artifact)}{href}"
        files.append(artifact)

    identity = identity.set_identity_information(information, references).new_identity_meta()

    main_file = IPFSFile(MAIN_DOCUMENT, identity.meta.finalize())
    files.append(main_file)
    identity = identity.sign_identity(file_cid(store, directory, main_file), is_personal)

    files.append(IPFSFile(SIGNATURE_DOCUMENT, identity.signature.finalize()))
    root_cid = store.store_directory(directory, files)[-1].cid

    identity = identity.finalize_new_identity_web3(f"{root_cid}{directory}{MAIN_DOCUMENT}")
    logger.info(f"Issued identity {identity.get_nft_did()}")
    return identity


def load_identity(
    ledger: LedgerProvider,
    store: IPFSStore,
    main_address: Optional[str],
    nft_did: str,
) -> IntelligibleIdentity:
    """
    Load an identity from its NFT DID.

    The returned identity carries the CID of main.xml as hash_digest, so
    verify_signature() can be called directly.
    """
    identity = IntelligibleIdentity.from_nft_did(ledger, nft_did, main_address)

    main_text = store.get_file(identity.token_uri)
    identity = identity.from_string_meta(main_text)

    signature_locator = f"{identity.token_uri.rsplit('/', 1)[0]}/{SIGNATURE_DOCUMENT}"
    identity = identity.from_string_signature(store.get_file(signature_locator))

    directory = identity_directory(identity.information)
    digest = file_cid(store, directory, IPFSFile(MAIN_DOCUMENT, main_text))

    logger.info(f"Loaded identity {nft_did}")
    return replace(identity, hash_digest=digest)
