"""
Ledger provider abstraction.

Defines the operations the identity lifecycle needs from the chain that
hosts the identity tokens. The web3 adapter (blockchain.identity_web3)
implements it against a live node; tests drive the lifecycle with an
in-memory implementation.
"""

from abc import ABC, abstractmethod
from typing import Optional, Union


class LedgerProvider(ABC):
    """
    Base class for identity token ledgers.

    Implementations must:
    1. Reserve token ids and mint reserved tokens with a content locator
    2. Sign payloads with the key of a managed address
    3. Resolve token URIs by token id or by owner
    """

    @property
    @abstractmethod
    def contract_address(self) -> Optional[str]:
        """Address of the identity token contract, None if not bound."""
        pass

    @abstractmethod
    def at(self, contract_address: str) -> "LedgerProvider":
        """
        Return a provider bound to another contract on the same network.

        Args:
            contract_address: Identity token contract address

        Returns:
            LedgerProvider: New provider instance
        """
        pass

    @abstractmethod
    def resolve_address(self, address: Optional[Union[str, int]]) -> str:
        """
        Normalize the main address used for operations.

        Args:
            address: Address string, index into the node account list, or
                     None to use the provider's default account

        Returns:
            str: Checksum address

        Raises:
            PreconditionFailed: If no address is given and none can be derived,
                or the index is out of range
        """
        pass

    @abstractmethod
    def reserve_token_id(self, owner: str) -> int:
        """Reserve a fresh token id for owner."""
        pass

    @abstractmethod
    def mint_reserved(self, owner: str, recipient: str, token_id: int, uri: str) -> str:
        """
        Mint a previously reserved token.

        Args:
            owner: Address that reserved the token id
            recipient: Address receiving the token
            token_id: Reserved token id
            uri: Content locator of the identity metadata

        Returns:
            str: Transaction hash
        """
        pass

    @abstractmethod
    def sign_personal(self, payload: str, address: str) -> str:
        """Sign with the personal-message scheme."""
        pass

    @abstractmethod
    def sign(self, payload: str, address: str) -> str:
        """Sign with the explicit message-hash scheme."""
        pass

    @abstractmethod
    def get_token_owner_last_token(self, address: str) -> int:
        """Id of the last identity token owned by address."""
        pass

    @abstractmethod
    def get_token_owner(self, token_id: int) -> str:
        """Address holding a token."""
        pass

    @abstractmethod
    def get_token_uri(self, token_id: int) -> str:
        """Content locator stored for a token."""
        pass

    @abstractmethod
    def get_chain_id(self) -> int:
        pass
