"""
Multibase Fingerprint Codec

Encodes secp256k1 public keys into self-describing multibase fingerprints,
the method-specific part of a did:key identifier.

Layout of the tagged buffer:
    [0xE7][0x01][compressed public key (33 bytes)]
    - 0xE7: multicodec identifier for a secp256k1 public key
    - 0x01: trailing byte of the variable-integer multicodec header

The fingerprint is the tagged buffer encoded with the requested multibase:
    - 'z' + base58btc  (default, e.g. zQ3s...)
    - 'u' + base64url  (no padding)

Reference:
    https://github.com/multiformats/multicodec
    https://github.com/multiformats/multibase
"""

import base64

import base58

from identity.errors import InvalidArgument

SECP256K1_MULTICODEC_IDENTIFIER = 0xE7
VARIABLE_INTEGER_TRAILING_BYTE = 0x01
MULTICODEC_SECP256K1_PUB = bytes([SECP256K1_MULTICODEC_IDENTIFIER, VARIABLE_INTEGER_TRAILING_BYTE])

MULTIBASE_PREFIXES = {
    "base58btc": "z",
    "base64url": "u",
}


def base58_encode(data: bytes) -> str:
    """Encode bytes to base58 (Bitcoin alphabet), keeping leading zero bytes as '1'."""
    return base58.b58encode(data).decode("ascii")


def base58_decode(encoded: str) -> bytes:
    """Decode a base58 (Bitcoin alphabet) string."""
    try:
        return base58.b58decode(encoded)
    except ValueError as e:
        raise InvalidArgument(f"Invalid base58 string: {e}") from e


def base64url_encode(data: bytes) -> str:
    """Encode bytes to unpadded base64url."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(encoded: str) -> bytes:
    """Decode an unpadded base64url string."""
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii"))
    except (ValueError, UnicodeEncodeError) as e:
        raise InvalidArgument(f"Invalid base64url string: {e}") from e


def get_multibase_fingerprint(public_key: bytes, encoding: str = "base58btc") -> str:
    """
    Build the multibase fingerprint of a secp256k1 public key.

    Args:
        public_key: Compressed public key bytes
        encoding: "base58btc" (default) or "base64url"

    Returns:
        Fingerprint string prefixed with its multibase code

    Raises:
        InvalidArgument: If the encoding is not supported

    Example:
        >>> fp = get_multibase_fingerprint(compressed_key)
        >>> fp[:4]
        'zQ3s'
    """
    buffer = MULTICODEC_SECP256K1_PUB + bytes(public_key)

    if encoding == "base58btc":
        return MULTIBASE_PREFIXES["base58btc"] + base58_encode(buffer)
    if encoding == "base64url":
        return MULTIBASE_PREFIXES["base64url"] + base64url_encode(buffer)

    raise InvalidArgument(f"Unsupported encoding: {encoding}")


def decode_multibase_fingerprint(fingerprint: str) -> bytes:
    """
    Recover the public key bytes from a multibase fingerprint.

    Args:
        fingerprint: String produced by get_multibase_fingerprint

    Returns:
        The public key bytes that follow the multicodec header

    Raises:
        InvalidArgument: On unknown multibase prefix or wrong multicodec header
    """
    if not fingerprint:
        raise InvalidArgument("Empty fingerprint")

    prefix, body = fingerprint[0], fingerprint[1:]
    if prefix == MULTIBASE_PREFIXES["base58btc"]:
        buffer = base58_decode(body)
    elif prefix == MULTIBASE_PREFIXES["base64url"]:
        buffer = base64url_decode(body)
    else:
        raise InvalidArgument(f"Unsupported multibase prefix: {prefix}")

    if buffer[:2] != MULTICODEC_SECP256K1_PUB:
        raise InvalidArgument("Fingerprint is not a secp256k1 public key")

    return buffer[2:]
