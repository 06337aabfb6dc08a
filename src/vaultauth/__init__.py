"""
VaultAuth - Password Vault Login Negotiation

This package implements the client side of logging into a password-vault
account service: primary login, regional redirect, one-time codes,
out-of-band approval and device trust registration.

Secondary verification:
- Google / Microsoft Authenticator codes
- YubiKey and Sesame one-time passwords
- Out-of-band approval (push), with passcode fallback

Example Usage:
    from vaultauth import LoginClient, LoginConfig

    client = LoginClient(config=LoginConfig.from_env())
    result = client.login(
        username="jdoe@example.com",
        credential_hash=login_hash,
        key=derived_key,
        iterations=100100,
    )
    if result.success:
        print(f"Logged in on {result.session.server}")

        # Export trace for auditing
        trace = client.export_trace_json()
"""

from vaultauth.core.types import AuthResult, FailureKind, MultifactorType, Session
from vaultauth.login.client import LoginClient, LoginConfig, lastpass_login

__version__ = "0.1.0"

__all__ = [
    # Main API
    "LoginClient",
    "LoginConfig",
    "lastpass_login",
    # Types
    "AuthResult",
    "FailureKind",
    "MultifactorType",
    "Session",
    # Metadata
    "__version__",
]
