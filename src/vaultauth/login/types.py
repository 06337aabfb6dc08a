"""
VaultAuth Login Types

States, events and context of the login negotiation, plus the constants
of the login protocol.

States:
    INITIAL -> PRIMARY_ATTEMPTED -> (REDIRECTED) -> SUCCESS
                                               -> OUT_OF_BAND_POLLING
                                               -> MULTIFACTOR_PROMPTING
                                               -> FAILED
    OUT_OF_BAND_POLLING -> OUT_OF_BAND_POLLING (still waiting)
                        -> OUT_OF_BAND_PASSCODE_FALLBACK -> MULTIFACTOR_PROMPTING
                        -> SUCCESS | FAILED
    MULTIFACTOR_PROMPTING -> MULTIFACTOR_PROMPTING (wrong code)
                          -> SUCCESS | FAILED
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Dict, FrozenSet, Mapping, Optional

import attrs

from vaultauth.core.types import FailureKind


# =============================================================================
# PROTOCOL CONSTANTS
# =============================================================================

DEFAULT_SERVER = "lastpass.com"
REDIRECT_SERVER = "lastpass.eu"
LOGIN_ENDPOINT = "login.php"
TRUST_ENDPOINT = "trust.php"
PROTOCOL_VERSION = "2"
LOGIN_METHOD = "cli"

OUT_OF_BAND_CAUSE = "outofbandrequired"
CAPABILITY_PASSCODE = "passcode"
CAPABILITY_OUT_OF_BAND = "outofband"

MSG_NO_CAUSE = "Unable to determine login failure cause."
MSG_NO_OOB_TYPE = "Could not determine out-of-band type."
MSG_UNPARSABLE = "Could not parse error message to login request."
MSG_INVALID_CODE = "Invalid multifactor code; please try again."
MSG_POLL_LIMIT = "Out-of-band approval was not received in time."

UPSELL_SUFFIX = " Upgrade your browser extension so you can enter it."

SECRET_PARAMETERS: FrozenSet[str] = frozenset(
    {"hash", "otp", "sesameotp", "uuid", "token", "outofbandretryid"}
)


# =============================================================================
# HELPERS
# =============================================================================


def filter_error_message(message: str) -> str:
    """Cut the server message at the browser-extension upsell, if present."""
    index = message.find(UPSELL_SUFFIX)
    if index >= 0:
        return message[:index]
    return message


def has_capability(capabilities: str, capability: str) -> bool:
    """True if ``capability`` is an exact item of the comma separated list."""
    return capability in capabilities.split(",")


def redact_parameters(parameters: Mapping[str, str]) -> Dict[str, str]:
    """Copy of ``parameters`` safe for logging."""
    return {
        name: ("<redacted>" if name in SECRET_PARAMETERS and value else value)
        for name, value in parameters.items()
    }


# =============================================================================
# STATE MACHINE
# =============================================================================


class NegotiationState(Enum):
    """Login negotiation states."""

    INITIAL = auto()
    PRIMARY_ATTEMPTED = auto()
    REDIRECTED = auto()
    OUT_OF_BAND_POLLING = auto()
    OUT_OF_BAND_PASSCODE_FALLBACK = auto()
    MULTIFACTOR_PROMPTING = auto()
    SUCCESS = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (NegotiationState.SUCCESS, NegotiationState.FAILED)


@attrs.define
class NegotiationContext:
    """
    Negotiation progress visible to invariants and traces.

    Secrets never enter the context; the request parameters live in
    LoginParameters.
    """

    username: str = ""
    server: str = ""
    redirects: int = 0
    cause: Optional[str] = None
    challenge_name: Optional[str] = None
    can_passcode: bool = False
    retry_id: Optional[str] = None
    polls: int = 0
    code_attempts: int = 0
    rejected_codes: int = 0
    failure_kind: Optional[FailureKind] = None
    error_message: str = ""


# =============================================================================
# EVENTS
# =============================================================================


@attrs.define(frozen=True, slots=True)
class PrimaryLoginSent:
    """First login request was posted."""

    username: str
    server: str


@attrs.define(frozen=True, slots=True)
class RedirectReceived:
    """Server directed the client to another regional server."""

    server: str


@attrs.define(frozen=True, slots=True)
class OutOfBandChallenged:
    """Server demands asynchronous out-of-band approval."""

    name: str
    can_passcode: bool


@attrs.define(frozen=True, slots=True)
class ApprovalPending:
    """Out-of-band approval is still outstanding."""

    retry_id: Optional[str] = None


@attrs.define(frozen=True, slots=True)
class PasscodeFallback:
    """Out-of-band approval abandoned in favour of passcode entry."""

    name: str


@attrs.define(frozen=True, slots=True)
class MultifactorChallenged:
    """Server demands a synchronous one-time code."""

    cause: str
    name: str


@attrs.define(frozen=True, slots=True)
class CodeSubmitted:
    """A one-time code was entered and posted."""

    pass


@attrs.define(frozen=True, slots=True)
class CodeRejected:
    """Server reported the submitted code as wrong."""

    pass


@attrs.define(frozen=True, slots=True)
class LoginSucceeded:
    """Server accepted the login."""

    server: str


@attrs.define(frozen=True, slots=True)
class LoginFailed:
    """Negotiation ended without a session."""

    failure_kind: FailureKind
    error_message: str
    cause: Optional[str] = None
