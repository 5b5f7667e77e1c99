# backend/fusion/crud/__init__.py
"""
Persistence package: the credential store protocol and its SQL implementation.
"""

from .credential_store import CredentialStore, SqlCredentialStore

__all__ = ["CredentialStore", "SqlCredentialStore"]
