"""Credential storage and the authentication session state machine"""

from .credential_store import CredentialStore, EncryptedFileCredentialStore
from .session_manager import AuthSessionManager

__all__ = ["CredentialStore", "EncryptedFileCredentialStore", "AuthSessionManager"]
