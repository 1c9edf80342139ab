"""Self-sovereign identity helpers."""
