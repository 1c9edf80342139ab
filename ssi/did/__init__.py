"""did:key derivation and resolution."""
