"""
Shared fixtures: sample identity data and in-memory ledger / IPFS fakes.
"""

import hashlib

import pytest
from eth_account import Account
from eth_utils import to_checksum_address

from blockchain.ledger import LedgerProvider
from blockchain.signatures import sign_message_hash, sign_personal_message
from identity.errors import PreconditionFailed
from identity.models import BodySection, ComponentData, FRBRDescriptor, IdentityInformation, Reference
from ipfs.ipfs_storage import IPFSEntry

ISSUER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
CHAIN_ID = 5

SUBJECT_DID = "DID:NFT:oadnaoisndoiansoi"
IDENTITY_DATE = "2024-03-01"
PACKAGE_PATH = f"/akn/eu/doc/{IDENTITY_DATE}/{SUBJECT_DID}/eng@/"


class FakeLedger(LedgerProvider):
    """In-memory identity token contract signing with a local key."""

    def __init__(self, private_key=ISSUER_KEY, chain_id=CHAIN_ID, contract_address=CONTRACT_ADDRESS):
        self.private_key = private_key
        self.account = Account.from_key(private_key)
        self.chain_id = chain_id
        self._contract_address = contract_address
        self.next_token_id = 1
        self.reserved = {}
        self.tokens = {}

    @property
    def contract_address(self):
        return self._contract_address

    def at(self, contract_address):
        return FakeLedger(self.private_key, self.chain_id, contract_address)

    def resolve_address(self, address):
        if address:
            return to_checksum_address(address)
        return self.account.address

    def reserve_token_id(self, owner):
        token_id = self.next_token_id
        self.next_token_id += 1
        self.reserved[token_id] = owner
        return token_id

    def mint_reserved(self, owner, recipient, token_id, uri):
        if self.reserved.get(token_id) != owner:
            raise PreconditionFailed(f"Token {token_id} not reserved by {owner}")
        self.tokens[token_id] = (recipient, uri)
        return "0x" + "00" * 32

    def sign_personal(self, payload, address):
        return sign_personal_message(payload, self.private_key)

    def sign(self, payload, address):
        return sign_message_hash(payload, self.private_key)

    def get_token_owner_last_token(self, address):
        owned = [tid for tid, (owner, _) in self.tokens.items() if owner.lower() == address.lower()]
        if not owned:
            raise PreconditionFailed(f"{address} owns no identity token")
        return owned[-1]

    def get_token_owner(self, token_id):
        return self.tokens[token_id][0]

    def get_token_uri(self, token_id):
        return self.tokens[token_id][1]

    def get_chain_id(self):
        return self.chain_id


class FakeStore:
    """In-memory stand-in for IPFSStore with deterministic fake CIDs."""

    def __init__(self):
        self.directories = {}

    @staticmethod
    def _cid(directory, files):
        digest = hashlib.sha256()
        for f in files:
            digest.update(f"{directory}{f.path}".encode("utf-8"))
            digest.update(f.data())
        return "bafy" + digest.hexdigest()[:40]

    def get_cids(self, directory, files):
        entries = [IPFSEntry(f"{directory.strip('/')}/{f.path}", self._cid(directory, [f])) for f in files]
        entries.append(IPFSEntry("", self._cid(directory, files)))
        return entries

    def store_directory(self, directory, files):
        entries = self.get_cids(directory, files)
        self.directories[entries[-1].cid] = {
            f"{directory}{f.path}": f.data().decode("utf-8") for f in files
        }
        return entries

    def get_file(self, locator):
        root, _, path = locator.partition("/")
        return self.directories[root][f"/{path}"]


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def information():
    """Subject information modelled on a software-issued identity."""
    return IdentityInformation(
        identity_date=IDENTITY_DATE,
        did=SUBJECT_DID,
        frbr_manifestation=FRBRDescriptor(
            components=[
                ComponentData(
                    e_id="msoftware",
                    href="IntelligibleIdentity1.0.1.hashdigest.json",
                    name="IntelligibleIdentity1.0.1",
                    show_as="IntelligibleIdentity 1.0.1 Software",
                ),
                ComponentData(
                    e_id="msmartcontract",
                    href="IntelligibleIdentity.sol",
                    name="IntelligibleIdentity",
                    show_as="IntelligibleIdentity Smart Contract",
                ),
            ]
        ),
        additional_body={
            "notes": BodySection(title="Notes", paragraphs=["Issued for testing", "Second paragraph"]),
        },
    )


@pytest.fixture
def references():
    return {
        "iid": Reference(entity=SUBJECT_DID, href=f"{PACKAGE_PATH[:-1]}.akn"),
        "iidDIDDoc": Reference(entity="diddoc.json", href=f"{PACKAGE_PATH}diddoc.json"),
        "iidIssuer": Reference(entity=SUBJECT_DID, href=f"{PACKAGE_PATH[:-1]}.akn"),
        "eidas": Reference(entity="EU COM/2021/281 final", href="/akn/eu/doc/2021-03-06/2021_281/eng@.akn"),
        "iidIssuerSoftware": Reference(
            type="TLCObject",
            entity="IntelligibleIdentity1.0.1.hashdigest.json",
            href=f"{PACKAGE_PATH}IntelligibleIdentity1.0.1.hashdigest.json",
        ),
        "nftSmartContract": Reference(
            type="TLCObject",
            entity="IntelligibleIdentity.sol",
            href=f"{PACKAGE_PATH}IntelligibleIdentity.sol",
        ),
    }
