"""
DID (Decentralized Identifier) Module

This module derives did:key identifiers from secp256k1 keypairs, the same
curve used by the Ethereum account that issues the identity token.
The did:key method embeds the public key directly in the DID, making it
self-verifiable without external lookups.
"""

import logging
from typing import Any, Callable, Dict, Optional, Union

from eth_account import Account
from eth_keys import keys
from eth_utils import ValidationError, decode_hex

from identity.errors import InvalidKey, MissingKey
from ssi.did.fingerprint import base64url_encode, get_multibase_fingerprint
from ssi.did.resolver import DIDKeyResolver, public_key_to_jwk

logger = logging.getLogger(__name__)

KeyInput = Union[bytes, bytearray, str]

JSON_WEB_KEY_2020 = "JsonWebKey2020"


def _to_bytes(value: KeyInput) -> bytes:
    """Accept raw bytes or a hex string (with or without 0x)."""
    if isinstance(value, str):
        try:
            return decode_hex(value)
        except ValueError as e:
            raise InvalidKey(f"Key is not valid hex: {e}") from e
    return bytes(value)


def generate_private_key() -> bytes:
    """Default key generation service: a fresh Ethereum account key."""
    return bytes(Account.create().key)


def compress_public_key(public_key: KeyInput) -> bytes:
    """
    Normalize a secp256k1 public key to its 33-byte compressed form.

    Accepted inputs:
        - 33 bytes compressed (0x02/0x03 prefix)
        - 65 bytes uncompressed (0x04 prefix)
        - 64 bytes raw X||Y

    Raises:
        InvalidKey: On any other length or a point that is not on the curve
    """
    raw = _to_bytes(public_key)
    try:
        if len(raw) == 33:
            return keys.PublicKey.from_compressed_bytes(raw).to_compressed_bytes()
        if len(raw) == 65 and raw[0] == 0x04:
            return keys.PublicKey(raw[1:]).to_compressed_bytes()
        if len(raw) == 64:
            return keys.PublicKey(raw).to_compressed_bytes()
    except (ValidationError, ValueError) as e:
        raise InvalidKey(f"Invalid secp256k1 public key: {e}") from e

    raise InvalidKey(f"Unsupported public key length: {len(raw)} bytes")


class KeyDid:
    """
    Provides the means to create a did:key identity for a secp256k1 keypair.

    If no keypair is supplied, a fresh one is produced by the key generator
    when the DID document is created.
    """

    def __init__(
        self,
        private_key: Optional[KeyInput] = None,
        public_key: Optional[KeyInput] = None,
        resolver: Optional[DIDKeyResolver] = None,
        key_generator: Callable[[], bytes] = generate_private_key,
    ):
        """
        Initialize the key identity.

        Args:
            private_key: 32-byte secp256k1 private key (bytes or hex)
            public_key: Public key in compressed, uncompressed or raw form;
                        derived from the private key when omitted
            resolver: Service mapping a did:key to its DID document
            key_generator: Service producing a fresh private key

        Raises:
            MissingKey: If a public key is supplied without its private key
            InvalidKey: If any key has an unsupported length
        """
        self.resolver = resolver or DIDKeyResolver()
        self.key_generator = key_generator
        self.private_key = None
        self.public_key = None

        if private_key is None and public_key is None:
            return
        if private_key is None:
            raise MissingKey("keyDid: private key not set")

        self.private_key = self._load_private_key(private_key)
        if public_key is None:
            self.public_key = self.private_key.public_key.to_compressed_bytes()
        else:
            self.public_key = compress_public_key(public_key)

    @staticmethod
    def _load_private_key(private_key: KeyInput) -> keys.PrivateKey:
        raw = _to_bytes(private_key)
        if len(raw) != 32:
            raise InvalidKey(f"Unsupported private key length: {len(raw)} bytes")
        try:
            return keys.PrivateKey(raw)
        except ValidationError as e:
            raise InvalidKey(f"Invalid secp256k1 private key: {e}") from e

    @property
    def fingerprint(self) -> Optional[str]:
        if self.public_key is None:
            return None
        return get_multibase_fingerprint(self.public_key)

    @property
    def did(self) -> Optional[str]:
        if self.public_key is None:
            return None
        return f"did:key:{self.fingerprint}"

    @property
    def key_id(self) -> Optional[str]:
        if self.public_key is None:
            return None
        return f"{self.did}#{self.fingerprint}"

    def export_keys(self) -> Dict[str, Any]:
        """
        Export the keypair as a JsonWebKey2020 verification method.

        Returns:
            Dictionary with id, type, controller, publicKeyJwk and privateKeyJwk
        """
        public = keys.PublicKey.from_compressed_bytes(self.public_key)
        public_jwk = public_key_to_jwk(public)
        private_jwk = dict(public_jwk)
        private_jwk["d"] = base64url_encode(self.private_key.to_bytes())

        return {
            "id": self.key_id,
            "type": JSON_WEB_KEY_2020,
            "controller": self.did,
            "publicKeyJwk": public_jwk,
            "privateKeyJwk": private_jwk,
        }

    def create_did_document(self) -> Dict[str, Any]:
        """
        Create the DID document for this keypair.

        Returns:
            Dictionary containing:
            - didDocument: The resolved DID document
            - keys: List with the exported JsonWebKey2020 keypair

        Example:
            >>> kd = KeyDid(private_key=bytes.fromhex("11" * 32))
            >>> result = kd.create_did_document()
            >>> result["didDocument"]["id"].startswith("did:key:zQ3s")
            True
        """
        if self.public_key is None:
            generated = KeyDid(
                private_key=self.key_generator(),
                resolver=self.resolver,
                key_generator=self.key_generator,
            )
            logger.info(f"Generated new did:key keypair: {generated.did[:30]}...")
            return generated.create_did_document()

        did_document = self.resolver.resolve(self.did)
        logger.debug(f"Resolved DID document for {self.did}")

        return {"didDocument": did_document, "keys": [self.export_keys()]}


def derive_key_identity(
    private_key: Optional[KeyInput] = None,
    public_key: Optional[KeyInput] = None,
    resolver: Optional[DIDKeyResolver] = None,
    key_generator: Callable[[], bytes] = generate_private_key,
) -> Dict[str, Any]:
    """
    Convenience function deriving a did:key document from a keypair.

    Args:
        private_key: Optional private key; a fresh key is generated if both keys are omitted
        public_key: Optional public key
        resolver: Optional DID resolver
        key_generator: Optional key generation service

    Returns:
        Dictionary with didDocument and keys
    """
    key_did = KeyDid(
        private_key=private_key,
        public_key=public_key,
        resolver=resolver,
        key_generator=key_generator,
    )
    return key_did.create_did_document()


if __name__ == "__main__":
    import json

    print("Generating new did:key...")
    identity = derive_key_identity()
    print(json.dumps(identity["didDocument"], indent=2))
    print("\n⚠️  Keep private key secure!")
