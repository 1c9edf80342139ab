"""
Identity Error Taxonomy

Every failure raised by the identity core derives from IdentityError so
callers can catch the whole family at once. Collaborator failures (web3,
IPFS) keep the original library exception chained and on `.original`.
"""

from typing import Optional


class IdentityError(Exception):
    """Base class for identity errors."""
    pass


class PreconditionFailed(IdentityError):
    """Raised when a required prior state or field is missing."""
    pass


class MissingRequiredReference(IdentityError):
    """Raised when the reference set lacks one of the reserved keys."""
    pass


class InvalidArgument(IdentityError, ValueError):
    """Raised on malformed codec, key or document input."""
    pass


class InvalidKey(InvalidArgument):
    """Raised when key bytes have an unsupported length or are not on the curve."""
    pass


class MissingKey(InvalidArgument):
    """Raised when a keypair is supplied without its private key."""
    pass


class MalformedIdentifier(InvalidArgument):
    """Raised when an NFT DID string does not have the expected shape."""
    pass


class DuplicateElementId(InvalidArgument):
    """Raised when two document elements share the same eId."""
    pass


class CollaboratorFailure(IdentityError):
    """Wraps an error surfaced by an external dependency (ledger, IPFS)."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original
