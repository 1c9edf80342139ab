"""
did:key Resolver

Expands a secp256k1 did:key identifier into its DID document. The document
carries a single JsonWebKey2020 verification method derived from the key
embedded in the identifier, referenced from every verification relationship
the did:key method defines for signing keys.
"""

from typing import Any, Dict

from eth_keys import keys
from eth_utils import ValidationError

from identity.errors import InvalidArgument
from ssi.did.fingerprint import base64url_encode, decode_multibase_fingerprint

DID_KEY_PREFIX = "did:key:"

DID_CONTEXT = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/suites/jws-2020/v1",
]

VERIFICATION_RELATIONSHIPS = (
    "authentication",
    "assertionMethod",
    "capabilityInvocation",
    "capabilityDelegation",
)


def public_key_to_jwk(public_key: keys.PublicKey) -> Dict[str, str]:
    """Express a secp256k1 public key as an EC JWK."""
    raw = public_key.to_bytes()
    return {
        "kty": "EC",
        "crv": "secp256k1",
        "x": base64url_encode(raw[:32]),
        "y": base64url_encode(raw[32:]),
    }


class DIDKeyResolver:
    """Resolves did:key identifiers locally, without a network lookup."""

    def resolve(self, did: str) -> Dict[str, Any]:
        """
        Resolve a did:key identifier to its DID document.

        Args:
            did: Identifier of the form did:key:<fingerprint>

        Returns:
            DID document as a JSON-compatible dict

        Raises:
            InvalidArgument: If the identifier is not a secp256k1 did:key
        """
        if not did or not did.startswith(DID_KEY_PREFIX):
            raise InvalidArgument(f"Not a did:key identifier: {did}")

        fingerprint = did[len(DID_KEY_PREFIX):]
        compressed = decode_multibase_fingerprint(fingerprint)
        try:
            public_key = keys.PublicKey.from_compressed_bytes(compressed)
        except (ValidationError, ValueError) as e:
            raise InvalidArgument(f"did:key does not embed a valid secp256k1 key: {e}") from e

        method_id = f"{did}#{fingerprint}"
        verification_method = {
            "id": method_id,
            "type": "JsonWebKey2020",
            "controller": did,
            "publicKeyJwk": public_key_to_jwk(public_key),
        }

        document = {
            "@context": list(DID_CONTEXT),
            "id": did,
            "verificationMethod": [verification_method],
        }
        for relationship in VERIFICATION_RELATIONSHIPS:
            document[relationship] = [method_id]

        return document
