"""
IPFS Storage Module

Content-addressed storage for identity packages through the IPFS HTTP API
(Kubo /api/v0). An identity package is a directory such as

    akn/eu/doc/<date>/<did>/eng@/main.xml
    akn/eu/doc/<date>/<did>/eng@/signature.xml
    akn/eu/doc/<date>/<did>/eng@/diddoc.json

wrapped in a root directory whose CID prefixes every locator:

    <root cid>/akn/eu/doc/<date>/<did>/eng@/main.xml

Configuration (.env):
    IPFS_API_URL   API endpoint (default http://127.0.0.1:5001)
    IPFS_TIMEOUT   Request timeout in seconds (default 60)
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import List, Optional, Union
from urllib.parse import quote

import requests
from dotenv import load_dotenv

from identity.errors import CollaboratorFailure, InvalidArgument

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://127.0.0.1:5001"
DEFAULT_TIMEOUT = 60


@dataclass(frozen=True)
class IPFSFile:
    """A file to add, with its path relative to the package directory."""
    path: str
    content: Union[str, bytes]

    def data(self) -> bytes:
        if isinstance(self.content, str):
            return self.content.encode("utf-8")
        return self.content


@dataclass(frozen=True)
class IPFSEntry:
    """One added object. The wrapping root directory has an empty path."""
    path: str
    cid: str


def _strip_locator(locator: str) -> str:
    for prefix in ("ipfs://", "/ipfs/"):
        if locator.startswith(prefix):
            return locator[len(prefix):]
    return locator


def _parent_directories(paths: List[str]) -> List[str]:
    directories = set()
    for path in paths:
        parts = path.split("/")[:-1]
        for i in range(1, len(parts) + 1):
            directories.add("/".join(parts[:i]))
    return sorted(directories)


def find_entry(entries: List[IPFSEntry], path: str) -> Optional[IPFSEntry]:
    """Entry whose path equals path (leading '/' ignored), or None."""
    wanted = path.strip("/")
    for entry in entries:
        if entry.path.strip("/") == wanted:
            return entry
    return None


class IPFSStore:
    """
    IPFS HTTP API client.

    Usage:
        >>> store = IPFSStore.from_env()
        >>> entries = store.store_directory("/akn/eu/doc/2024-01-01/did/eng@/", files)
        >>> root_cid = entries[-1].cid
    """

    def __init__(self, api_url: str = DEFAULT_API_URL, timeout: float = DEFAULT_TIMEOUT):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "IPFSStore":
        return cls(
            api_url=os.getenv("IPFS_API_URL", DEFAULT_API_URL),
            timeout=float(os.getenv("IPFS_TIMEOUT", DEFAULT_TIMEOUT)),
        )

    def _post(self, endpoint: str, **kwargs) -> requests.Response:
        try:
            response = requests.post(
                f"{self.api_url}/api/v0/{endpoint}",
                timeout=self.timeout,
                **kwargs
            )
            response.raise_for_status()
            return response
        except requests.exceptions.RequestException as e:
            logger.error(f"IPFS {endpoint} failed: {e}", exc_info=True)
            raise CollaboratorFailure(f"identity/ipfs: {endpoint} failed: {e}", e) from e

    def _add(self, directory: str, files: List[IPFSFile], only_hash: bool) -> List[IPFSEntry]:
        if not files:
            raise InvalidArgument("identity/ipfs: No files to add")

        base = directory.strip("/")
        paths = [f"{base}/{f.path.strip('/')}" if base else f.path.strip("/") for f in files]

        multipart = [
            ("file", (quote(d, safe="/"), b"", "application/x-directory"))
            for d in _parent_directories(paths)
        ]
        multipart.extend(
            ("file", (quote(path, safe="/"), f.data(), "application/octet-stream"))
            for path, f in zip(paths, files)
        )

        params = {
            "wrap-with-directory": "true",
            "only-hash": "true" if only_hash else "false",
            "pin": "false" if only_hash else "true",
            "cid-version": "1",
        }
        response = self._post("add", params=params, files=multipart)

        # The add endpoint streams one JSON object per line, root directory last
        entries = []
        for line in response.text.splitlines():
            if not line.strip():
                continue
            item = json.loads(line)
            if "Hash" in item:
                entries.append(IPFSEntry(path=item.get("Name", ""), cid=item["Hash"]))

        if not entries:
            raise CollaboratorFailure("identity/ipfs: add returned no entries")
        return entries

    def get_cids(self, directory: str, files: List[IPFSFile]) -> List[IPFSEntry]:
        """
        Compute the CIDs files would get inside directory, without storing them.

        Args:
            directory: Package directory (e.g. "/akn/eu/doc/2024-01-01/did/eng@/")
            files: Files to hash

        Returns:
            Entries for files and directories; the last one is the root
        """
        entries = self._add(directory, files, only_hash=True)
        logger.debug(f"Hashed {len(files)} files under {directory}: root {entries[-1].cid}")
        return entries

    def store_directory(self, directory: str, files: List[IPFSFile]) -> List[IPFSEntry]:
        """
        Add and pin files inside directory.

        Returns:
            Entries for files and directories; the last one is the root
        """
        entries = self._add(directory, files, only_hash=False)
        logger.info(f"Pinned {len(files)} files under {directory}: root {entries[-1].cid}")
        return entries

    def get_file(self, locator: str) -> str:
        """
        Read a file as text.

        Args:
            locator: "<cid>/<path>", optionally prefixed with ipfs:// or /ipfs/
        """
        if not locator:
            raise InvalidArgument("identity/ipfs: You need to provide a locator")
        response = self._post("cat", params={"arg": _strip_locator(locator)})
        return response.content.decode("utf-8")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    print("🧪 Testing IPFS integration...")
    store = IPFSStore.from_env()
    files = [IPFSFile("hello.txt", "intelligible identity")]

    entries = store.store_directory("/test/", files)
    root = entries[-1].cid
    print(f"✅ Root CID: {root}")
    print(f"✅ Retrieved: {store.get_file(f'{root}/test/hello.txt')}")
