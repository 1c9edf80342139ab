"""Ledger side of Intelligible Identity: token contract adapter, signatures and NFT DIDs."""
