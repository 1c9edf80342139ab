#!/usr/bin/env python3
"""
Identity Web3 Adapter

Ledger provider for Intelligible Identity tokens on an Ethereum node.
Wraps a web3.py connection and the IntelligibleIdentity ERC-721 contract:

1. Reserve a token id for the issuer (reserveId + TokenIdReserved event)
2. Mint the reserved token with the identity metadata locator (mintReserved)
3. Sign identity digests with the issuer key (local key or node account)
4. Resolve token URIs by id or by owner (ERC-721 Enumerable)

Configuration is read from the environment (.env):
    WEB3_PROVIDER_URL             HTTP RPC endpoint
    IDENTITY_NETWORK_ID           Network id used to look up the contract artifact
    INTELLIGIBLE_IDENTITY_ADDRESS Contract address (overrides the artifact)
    IDENTITY_PRIVATE_KEY          Optional key for local transaction signing
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dotenv import load_dotenv
from eth_account import Account
from web3 import Web3

from blockchain.ledger import LedgerProvider
from blockchain.signatures import sign_message_hash, sign_personal_message
from identity.errors import CollaboratorFailure, IdentityError, PreconditionFailed

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URL = "http://127.0.0.1:8545"
ARTIFACT_PATH = Path(__file__).parent / "abis" / "IntelligibleIdentity.json"

TX_GAS = 500000
RECEIPT_TIMEOUT = 120


def load_artifact(path: Path = ARTIFACT_PATH) -> Dict[str, Any]:
    """
    Load a contract artifact.

    Handles both a bare ABI array and the {abi: [...], networks: {...}} format.
    """
    with open(path, "r") as f:
        data = json.load(f)
    if isinstance(data, list):
        return {"abi": data, "networks": {}}
    data.setdefault("networks", {})
    return data


class IdentityWeb3(LedgerProvider):
    """Intelligible Identity token contract over web3.py"""

    def __init__(
        self,
        w3: Web3,
        network_id: Optional[str] = None,
        artifact: Optional[Dict[str, Any]] = None,
        contract_address: Optional[str] = None,
        private_key: Optional[str] = None,
    ):
        """
        Args:
            w3: Connected Web3 instance
            network_id: Network id for the artifact address lookup
            artifact: Contract artifact (defaults to the bundled ABI)
            contract_address: Explicit contract address
            private_key: Key for local signing; the node account is used otherwise
        """
        self.w3 = w3
        self.network_id = str(network_id) if network_id is not None else None
        self.artifact = artifact if artifact is not None else load_artifact()
        self.private_key = private_key
        self.account = Account.from_key(private_key) if private_key else None
        self.id_account = None

        if contract_address is None and self.network_id is not None:
            network = self.artifact["networks"].get(self.network_id, {})
            contract_address = network.get("address")

        self.contract = None
        if contract_address:
            self.contract = w3.eth.contract(
                address=Web3.to_checksum_address(contract_address),
                abi=self.artifact["abi"],
            )

    @classmethod
    def from_env(cls) -> "IdentityWeb3":
        """
        Build the adapter from environment variables.

        Raises:
            CollaboratorFailure: If the node is unreachable
        """
        provider_url = os.getenv("WEB3_PROVIDER_URL", DEFAULT_PROVIDER_URL)
        w3 = Web3(Web3.HTTPProvider(provider_url))
        if not w3.is_connected():
            raise CollaboratorFailure(f"identity/web3: Failed to connect to {provider_url}")

        return cls(
            w3,
            network_id=os.getenv("IDENTITY_NETWORK_ID"),
            contract_address=os.getenv("INTELLIGIBLE_IDENTITY_ADDRESS"),
            private_key=os.getenv("IDENTITY_PRIVATE_KEY"),
        )

    @property
    def contract_address(self) -> Optional[str]:
        if self.contract is None:
            return None
        return self.contract.address

    def at(self, contract_address: str) -> "IdentityWeb3":
        return IdentityWeb3(
            self.w3,
            network_id=self.network_id,
            artifact=self.artifact,
            contract_address=contract_address,
            private_key=self.private_key,
        )

    def _call(self, fn, action: str):
        try:
            return fn()
        except IdentityError:
            raise
        except Exception as e:
            logger.error(f"Ledger {action} failed: {e}", exc_info=True)
            raise CollaboratorFailure(f"identity/web3: {action} failed: {e}", e) from e

    def _require_contract(self):
        if self.contract is None:
            raise PreconditionFailed("identity/web3: No identity contract configured")

    def _owns_key(self, address: str) -> bool:
        return self.account is not None and self.account.address.lower() == address.lower()

    def _transact(self, function, sender: str) -> Dict[str, Any]:
        """Send a contract transaction from sender and wait for its receipt."""
        if self.account is not None:
            if not self._owns_key(sender):
                raise PreconditionFailed(
                    f"identity/web3: Configured key cannot send transactions for {sender}"
                )
            tx = function.build_transaction({
                "from": sender,
                "chainId": self.w3.eth.chain_id,
                "gas": TX_GAS,
                "gasPrice": self.w3.eth.gas_price,
                "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
            })
            signed_tx = self.w3.eth.account.sign_transaction(tx, self.private_key)
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        else:
            tx_hash = function.transact({"from": sender})

        logger.debug(f"Transaction sent: {Web3.to_hex(tx_hash)}")
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=RECEIPT_TIMEOUT)
        if receipt["status"] != 1:
            raise CollaboratorFailure(f"identity/web3: Transaction {Web3.to_hex(tx_hash)} reverted")
        return receipt

    def resolve_address(self, address: Optional[Union[str, int]]) -> str:
        if isinstance(address, int) and not isinstance(address, bool):
            accounts = self._call(lambda: self.w3.eth.accounts, "accounts lookup")
            if not 0 <= address < len(accounts):
                raise PreconditionFailed(
                    f"identity/web3: No node account at index {address} ({len(accounts)} available)"
                )
            return Web3.to_checksum_address(accounts[address])
        if address:
            return Web3.to_checksum_address(address)
        if self.account is not None:
            return self.account.address

        accounts = self._call(lambda: self.w3.eth.accounts, "accounts lookup")
        if not accounts:
            raise PreconditionFailed("identity/web3: You need to provide a main address for operations")
        return Web3.to_checksum_address(accounts[0])

    def reserve_token_id(self, owner: str) -> int:
        self._require_contract()
        receipt = self._call(
            lambda: self._transact(self.contract.functions.reserveId(), owner),
            "reserveId",
        )
        events = self._call(
            lambda: self.contract.events.TokenIdReserved().process_receipt(receipt),
            "TokenIdReserved decoding",
        )
        if not events:
            raise CollaboratorFailure("identity/web3: reserveId emitted no TokenIdReserved event")

        token_id = int(events[-1]["args"]["tokenId"])
        logger.info(f"Reserved identity token {token_id} for {owner}")
        return token_id

    def mint_reserved(self, owner: str, recipient: str, token_id: int, uri: str) -> str:
        self._require_contract()
        function = self.contract.functions.mintReserved(
            Web3.to_checksum_address(recipient), token_id, uri
        )
        receipt = self._call(lambda: self._transact(function, owner), "mintReserved")
        tx_hash = Web3.to_hex(receipt["transactionHash"])
        logger.info(f"Minted identity token {token_id} to {recipient} (tx {tx_hash})")
        return tx_hash

    def _sign_with_node(self, payload: str, address: str) -> str:
        # eth_sign applies the personal-message prefix node side
        signature = self._call(
            lambda: self.w3.eth.sign(Web3.to_checksum_address(address), text=payload),
            "eth_sign",
        )
        return Web3.to_hex(signature)

    def sign_personal(self, payload: str, address: str) -> str:
        if self._owns_key(address):
            return sign_personal_message(payload, self.private_key)
        return self._sign_with_node(payload, address)

    def sign(self, payload: str, address: str) -> str:
        if self._owns_key(address):
            return sign_message_hash(payload, self.private_key)
        return self._sign_with_node(payload, address)

    def get_token_owner_last_token(self, address: str) -> int:
        self._require_contract()
        owner = Web3.to_checksum_address(address)
        balance = self._call(lambda: self.contract.functions.balanceOf(owner).call(), "balanceOf")
        if balance == 0:
            raise PreconditionFailed(f"identity/web3: {owner} owns no identity token")
        return self._call(
            lambda: self.contract.functions.tokenOfOwnerByIndex(owner, balance - 1).call(),
            "tokenOfOwnerByIndex",
        )

    def get_token_owner(self, token_id: int) -> str:
        self._require_contract()
        return self._call(lambda: self.contract.functions.ownerOf(int(token_id)).call(), "ownerOf")

    def get_token_uri(self, token_id: int) -> str:
        self._require_contract()
        return self._call(lambda: self.contract.functions.tokenURI(int(token_id)).call(), "tokenURI")

    def get_chain_id(self) -> int:
        return self._call(lambda: self.w3.eth.chain_id, "chain id lookup")

    def new_address(self):
        """Create a fresh account for the identity holder."""
        self.id_account = Account.create()
        logger.info(f"Created identity address {self.id_account.address}")
        return self.id_account


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    print("Testing IdentityWeb3...")
    ledger = IdentityWeb3.from_env()
    print(f"✓ Connected, chain id {ledger.get_chain_id()}")
    print(f"  Contract: {ledger.contract_address}")
    print(f"  Main address: {ledger.resolve_address(None)}")
