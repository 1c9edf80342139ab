"""
Multibase Fingerprint Tests

Tests the base58btc / base64url codecs and the secp256k1 multicodec header.
"""

import os

import pytest

from identity.errors import InvalidArgument
from ssi.did.fingerprint import (
    MULTICODEC_SECP256K1_PUB,
    base58_decode,
    base58_encode,
    base64url_decode,
    base64url_encode,
    decode_multibase_fingerprint,
    get_multibase_fingerprint,
)


def random_compressed_key():
    return bytes([2 + os.urandom(1)[0] % 2]) + os.urandom(32)


class TestCodecs:
    """Low level base58 / base64url behaviour."""

    def test_base58_preserves_leading_zero_bytes(self):
        assert base58_encode(b"\x00\x00\x01") == "112"
        assert base58_decode("112") == b"\x00\x00\x01"

    def test_base58_known_value(self):
        assert base58_encode(b"hello world") == "StV1DL6CwTryKyV"

    def test_base58_rejects_invalid_characters(self):
        # '0', 'O', 'I' and 'l' are not in the Bitcoin alphabet
        with pytest.raises(InvalidArgument):
            base58_decode("0OIl")

    def test_base64url_is_unpadded_and_url_safe(self):
        encoded = base64url_encode(b"\xfb\xff\xfe")
        assert encoded == "-__-"
        assert base64url_encode(b"a") == "YQ"
        assert base64url_decode("YQ") == b"a"


class TestMultibaseFingerprint:
    """Fingerprint construction for secp256k1 keys."""

    def test_base58_fingerprint_prefix(self):
        fingerprint = get_multibase_fingerprint(random_compressed_key())
        assert fingerprint.startswith("zQ3s")

    def test_base64url_fingerprint_prefix(self):
        key = b"\x02" + b"\x11" * 32
        assert get_multibase_fingerprint(key, "base64url").startswith("u5wEC")

        key = b"\x03" + b"\x11" * 32
        assert get_multibase_fingerprint(key, "base64url").startswith("u5wED")

    def test_default_encoding_is_base58btc(self):
        key = random_compressed_key()
        assert get_multibase_fingerprint(key) == get_multibase_fingerprint(key, "base58btc")

    def test_deterministic(self):
        key = random_compressed_key()
        assert get_multibase_fingerprint(key) == get_multibase_fingerprint(key)

    def test_unsupported_encoding(self):
        with pytest.raises(InvalidArgument, match="Unsupported encoding"):
            get_multibase_fingerprint(random_compressed_key(), "base32")

    def test_distinct_keys_never_collide(self):
        keys = {random_compressed_key() for _ in range(1000)}
        fingerprints = {get_multibase_fingerprint(k) for k in keys}
        assert len(fingerprints) == len(keys)

    def test_decode_recovers_public_key(self):
        key = random_compressed_key()
        assert decode_multibase_fingerprint(get_multibase_fingerprint(key)) == key
        assert decode_multibase_fingerprint(get_multibase_fingerprint(key, "base64url")) == key

    def test_decode_rejects_foreign_multicodec(self):
        # ed25519 header (0xed 0x01) instead of secp256k1
        fingerprint = "z" + base58_encode(b"\xed\x01" + b"\x00" * 32)
        with pytest.raises(InvalidArgument):
            decode_multibase_fingerprint(fingerprint)

    def test_decode_rejects_unknown_prefix(self):
        with pytest.raises(InvalidArgument):
            decode_multibase_fingerprint("m" + base64url_encode(MULTICODEC_SECP256K1_PUB))
