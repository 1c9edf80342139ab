"""
NFT DID

Identifier of an identity token on an ERC-721 contract:

    did:nft:eip155:<chainId>_erc721:<contractAddress>_<tokenId>

Example:
    >>> build_nft_did(5, "0x" + "ab" * 20, 42)
    'did:nft:eip155:5_erc721:0xabababababababababababababababababababab_42'
"""

import re
from typing import NamedTuple

from identity.errors import MalformedIdentifier

NFT_DID_PREFIX = "did:nft:eip155"
TOKEN_STANDARD = "erc721"

_CHAIN_PART = re.compile(r"([0-9]+)_" + TOKEN_STANDARD)
_TOKEN_PART = re.compile(r"(0x[0-9a-fA-F]{40})_([0-9]+)")


class NftDid(NamedTuple):
    chain_id: int
    contract_address: str
    token_id: int


def build_nft_did(chain_id: int, contract_address: str, token_id: int) -> str:
    """Compose the NFT DID of a token."""
    return f"{NFT_DID_PREFIX}:{chain_id}_{TOKEN_STANDARD}:{contract_address}_{token_id}"


def parse_nft_did(did: str) -> NftDid:
    """
    Split an NFT DID into chain id, contract address and token id.

    Raises:
        MalformedIdentifier: If the string does not follow the NFT DID layout
    """
    if not isinstance(did, str):
        raise MalformedIdentifier(f"NFT DID must be a string, got {type(did).__name__}")

    parts = did.split(":")
    if len(parts) != 5 or parts[0] != "did" or parts[1] != "nft" or parts[2] != "eip155":
        raise MalformedIdentifier(f"Not an NFT DID: {did}")

    chain_match = _CHAIN_PART.fullmatch(parts[3])
    if not chain_match:
        raise MalformedIdentifier(f"Invalid chain segment in NFT DID: {parts[3]}")

    token_match = _TOKEN_PART.fullmatch(parts[4])
    if not token_match:
        raise MalformedIdentifier(f"Invalid token segment in NFT DID: {parts[4]}")

    return NftDid(
        chain_id=int(chain_match.group(1)),
        contract_address=token_match.group(1),
        token_id=int(token_match.group(2)),
    )
