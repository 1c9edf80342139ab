"""
Identity Signature Protocol

Signs and verifies the content digest of an identity package with the
issuer's Ethereum key. Two schemes are supported:

- personal: the "personal message" convention (eth_account.encode_defunct),
  i.e. keccak256("\\x19Ethereum Signed Message:\\n" + len(payload) + payload)
- non-personal: the same prefixed hash computed explicitly, the signature
  split into (v, r, s) and the signer's public key recovered with eth_keys

Both schemes hash the same prefixed message, so a signature produced with
either recovers to the same address.

Verification never trusts a claimed address: it recovers the signer from
(payload, signature) and compares it to the address bound to the identity.
"""

import logging
from typing import Tuple, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_utils import decode_hex, encode_hex, keccak, to_checksum_address

from identity.errors import InvalidArgument, PreconditionFailed

logger = logging.getLogger(__name__)

PERSONAL_MESSAGE_PREFIX = b"\x19Ethereum Signed Message:\n"

Payload = Union[str, bytes]
SignatureInput = Union[str, bytes]


def _payload_bytes(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return bytes(payload)


def _require_payload(payload: Payload):
    if payload is None or not payload:
        raise PreconditionFailed("identity/web3: You need to provide a valid payload")


def _require_signature(signature: SignatureInput):
    if signature is None or not signature:
        raise PreconditionFailed("identity/web3: You need to provide a valid signature")


def use_personal_scheme(is_personal) -> bool:
    """The personal scheme is the default when the flag is omitted or not a bool."""
    if not isinstance(is_personal, bool):
        return True
    return is_personal


def hash_personal_message(payload: Payload) -> bytes:
    """keccak256 of the payload behind the personal-message prefix and its decimal length."""
    data = _payload_bytes(payload)
    return keccak(PERSONAL_MESSAGE_PREFIX + str(len(data)).encode("ascii") + data)


def parse_rpc_signature(signature: SignatureInput) -> Tuple[int, int, int]:
    """
    Split a 65-byte RPC signature (r || s || v) into its components.

    Returns:
        (v, r, s) with v normalized to 0 or 1

    Raises:
        InvalidArgument: If the signature is not 65 bytes or v is out of range
    """
    try:
        raw = decode_hex(signature) if isinstance(signature, str) else bytes(signature)
    except ValueError as e:
        raise InvalidArgument(f"Signature is not valid hex: {e}") from e

    if len(raw) != 65:
        raise InvalidArgument(f"Invalid signature length: {len(raw)} bytes")

    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]
    if v >= 27:
        v -= 27
    if v not in (0, 1):
        raise InvalidArgument(f"Invalid signature recovery id: {raw[64]}")
    return v, r, s


def sign_personal_message(payload: Payload, private_key) -> str:
    """Sign with the personal-message convention using a local key."""
    signed = Account.sign_message(encode_defunct(primitive=_payload_bytes(payload)), private_key)
    return encode_hex(signed.signature)


def sign_message_hash(payload: Payload, private_key) -> str:
    """Sign the explicitly computed personal-message hash using a local key."""
    key = private_key if isinstance(private_key, keys.PrivateKey) else keys.PrivateKey(
        decode_hex(private_key) if isinstance(private_key, str) else bytes(private_key)
    )
    signature = key.sign_msg_hash(hash_personal_message(payload))
    return encode_hex(
        signature.r.to_bytes(32, "big") + signature.s.to_bytes(32, "big") + bytes([signature.v + 27])
    )


def sign_data(signer, payload: Payload, address: str, is_personal=True) -> str:
    """
    Sign a payload with the key of the given address.

    Args:
        signer: Ledger provider exposing sign_personal() and sign()
        payload: Data to sign (the identity package digest)
        address: Signing address
        is_personal: Use the personal-message scheme (default)

    Returns:
        Hex signature

    Raises:
        PreconditionFailed: If no address is configured or the payload is empty
    """
    if not address:
        raise PreconditionFailed("identity/web3: You need to provide a main address for operations")
    _require_payload(payload)

    if use_personal_scheme(is_personal):
        return signer.sign_personal(payload, address)
    return signer.sign(payload, address)


def get_address_from_signature(payload: Payload, signature: SignatureInput, is_personal=True) -> str:
    """
    Recover the checksum address that signed the payload.

    Raises:
        PreconditionFailed: If the payload or the signature is empty
        InvalidArgument: If the signature cannot be decoded
    """
    _require_payload(payload)
    _require_signature(signature)

    if use_personal_scheme(is_personal):
        signable = encode_defunct(primitive=_payload_bytes(payload))
        return Account.recover_message(signable, signature=signature)

    digest = hash_personal_message(payload)
    v, r, s = parse_rpc_signature(signature)
    public_key = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(digest)
    return to_checksum_address(public_key.to_canonical_address())


def verify_signed_data(payload: Payload, signature: SignatureInput, address: str, is_personal=True) -> bool:
    """
    Check that the payload was signed by the given address.

    Returns:
        True if the recovered signer equals address, False on any mismatch
        or recovery failure

    Raises:
        PreconditionFailed: If the payload or the signature is empty
    """
    _require_payload(payload)
    _require_signature(signature)

    try:
        recovered = get_address_from_signature(payload, signature, is_personal)
    except Exception as e:
        logger.warning(f"Signature recovery failed: {e}")
        return False

    if not address or recovered.lower() != address.lower():
        logger.warning(f"Signature does not match identity address {address}")
        return False
    return True
