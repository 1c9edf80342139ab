"""Intelligible Identity: metadata document, signature and token lifecycle."""
