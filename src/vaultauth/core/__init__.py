"""
VaultAuth Core Module

Provides foundational types and abstractions used across the login client.

Components:
- types: Core type definitions (LoginParameters, Session, AuthResult, ...)
- state_machine: Base state machine with invariant checking
- crypto: Private key decryption
- exceptions: Login error taxonomy
"""

from vaultauth.core.types import (
    AuthResult,
    FailureKind,
    LoginParameters,
    MultifactorType,
    Session,
)
from vaultauth.core.state_machine import (
    StateMachineBase,
    Transition,
    transition_map,
    verify_trace_against_table,
)
from vaultauth.core.exceptions import (
    VaultAuthError,
    LoginError,
    TransportFailure,
    ProtocolFailure,
    ChallengeFailure,
    UserAbort,
    UnspecifiedFailure,
    SecondFactorRequired,
)

__all__ = [
    # Types
    "AuthResult",
    "FailureKind",
    "LoginParameters",
    "MultifactorType",
    "Session",
    # State Machine
    "StateMachineBase",
    "Transition",
    "transition_map",
    "verify_trace_against_table",
    # Exceptions
    "VaultAuthError",
    "LoginError",
    "TransportFailure",
    "ProtocolFailure",
    "ChallengeFailure",
    "UserAbort",
    "UnspecifiedFailure",
    "SecondFactorRequired",
]
