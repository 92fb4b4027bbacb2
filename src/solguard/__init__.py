"""solguard - schema-driven Solana instruction codec, guarded sends and Jupiter quote negotiation."""

__version__ = "0.1.0"
