"""HTTP API of the sequence engine."""
