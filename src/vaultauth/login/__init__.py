"""
VaultAuth Login Module

Login negotiation with the account service.

Components:
- client: LoginClient, Negotiation and the negotiation state machine
- types: States, events and protocol constants

Supports:
- Regional server redirect
- One-time codes (authenticator apps, YubiKey, Sesame)
- Out-of-band approval with passcode fallback
- Device trust registration
"""

from vaultauth.login.client import (
    LoginClient,
    LoginConfig,
    Negotiation,
    NegotiationStateMachine,
    create_login_client,
    lastpass_login,
)
from vaultauth.login.types import NegotiationContext, NegotiationState

__all__ = [
    "LoginClient",
    "LoginConfig",
    "Negotiation",
    "NegotiationStateMachine",
    "create_login_client",
    "lastpass_login",
    "NegotiationContext",
    "NegotiationState",
]
