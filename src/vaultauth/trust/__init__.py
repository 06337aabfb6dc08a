"""
VaultAuth Trust Module

Device trust identifier handling.

Components:
- store: Persistent named value storage
- device: Trust identifier generation and device label
"""

from vaultauth.trust.device import (
    TRUST_ID_ALPHABET,
    TRUST_ID_LENGTH,
    calculate_trust_id,
    calculate_trust_label,
    generate_trust_id,
)
from vaultauth.trust.store import FileTrustStore, MemoryTrustStore, TrustStore

__all__ = [
    "TRUST_ID_ALPHABET",
    "TRUST_ID_LENGTH",
    "calculate_trust_id",
    "calculate_trust_label",
    "generate_trust_id",
    "FileTrustStore",
    "MemoryTrustStore",
    "TrustStore",
]
