"""IPFS Storage Package"""

from .ipfs_storage import (
    IPFSEntry,
    IPFSFile,
    IPFSStore,
    find_entry,
)

__all__ = [
    'IPFSEntry',
    'IPFSFile',
    'IPFSStore',
    'find_entry',
]
