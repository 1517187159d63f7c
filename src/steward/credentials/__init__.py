"""Steward credential handling: at-rest encryption and key lifecycle."""

from steward.credentials.service import CredentialService, CredentialSummary
from steward.credentials.vault import CredentialVault, generate_key, key_prefix

__all__ = [
    "CredentialService",
    "CredentialSummary",
    "CredentialVault",
    "generate_key",
    "key_prefix",
]
