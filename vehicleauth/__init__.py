"""Authenticated, replay-protected command messaging over P-256 ECDH sessions."""

__version__ = "0.1.0"
__all__ = ["errors", "messages", "metadata", "window", "session", "peer", "verifier", "signer"]