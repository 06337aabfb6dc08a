"""
VaultAuth Device Trust

Identifier and label that let the service remember this device, so later
logins from it can skip secondary verification.
"""

from __future__ import annotations

import platform
import secrets
from typing import Optional

import structlog

from vaultauth.trust.store import TrustStore

logger = structlog.get_logger()

TRUST_ID_NAME = "trusted_id"
TRUST_ID_LENGTH = 32
TRUST_ID_ALPHABET = (
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ1234567890!@#$"
)


def generate_trust_id() -> str:
    """Return a fresh identifier of uniformly random alphabet characters."""
    return "".join(
        TRUST_ID_ALPHABET[secrets.randbelow(len(TRUST_ID_ALPHABET))]
        for _ in range(TRUST_ID_LENGTH)
    )


def calculate_trust_id(store: TrustStore, force: bool) -> Optional[str]:
    """
    Read the stored trust identifier, creating it when ``force`` is set.

    A stored identifier is always returned unchanged, whether or not trust
    was requested for this login. Without ``force`` nothing is generated.
    """
    trust_id = store.read(TRUST_ID_NAME)
    if force and not trust_id:
        trust_id = generate_trust_id()
        store.write(TRUST_ID_NAME, trust_id)
        logger.info("trust_id_generated")
    return trust_id


def calculate_trust_label() -> str:
    """Human-readable device label, e.g. ``"laptop - Linux 6.1.0"``."""
    uname = platform.uname()
    return f"{uname.node} - {uname.system} {uname.release}"
