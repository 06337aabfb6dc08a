"""
VaultAuth Core Types

Fundamental type definitions shared by the login negotiation, the
transport collaborators and the trust registration.

Design Principles:
- Immutable results: sessions and outcomes use frozen attrs
- Validated: outcome constraints enforced at construction
- One mutable structure: the request parameter set, shared by reference
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Dict, Iterator, Optional, Tuple

import attrs
from attrs import field, validators

from vaultauth.core.exceptions import (
    ChallengeFailure,
    LoginError,
    ProtocolFailure,
    TransportFailure,
    UserAbort,
)


# =============================================================================
# ENUMS
# =============================================================================


class FailureKind(Enum):
    """Classification of a terminal negotiation failure."""

    TRANSPORT = auto()
    PROTOCOL = auto()
    CHALLENGE = auto()
    USER_ABORT = auto()
    UNSPECIFIED = auto()

    @classmethod
    def from_error(cls, error: LoginError) -> FailureKind:
        """Map an exception from the login taxonomy to its kind."""
        if isinstance(error, TransportFailure):
            return cls.TRANSPORT
        if isinstance(error, UserAbort):
            return cls.USER_ABORT
        if isinstance(error, ChallengeFailure):
            return cls.CHALLENGE
        if isinstance(error, ProtocolFailure):
            return cls.PROTOCOL
        return cls.UNSPECIFIED


class MultifactorType(Enum):
    """
    Synchronous second-factor challenges the server may demand.

    Each member carries the human-readable name shown in the prompt, the
    cause token that triggers it, the cause token the server answers with
    when the submitted code is wrong, and the request parameter that
    carries the code.
    """

    GOOGLE_AUTHENTICATOR = (
        "Google Authenticator Code",
        "googleauthrequired",
        "googleauthfailed",
        "otp",
    )
    YUBIKEY = ("YubiKey OTP", "otprequired", "otpfailed", "otp")
    SESAME = ("Sesame OTP", "sesameotprequired", "sesameotpfailed", "sesameotp")
    OUT_OF_BAND = (
        "Out-of-Band OTP",
        "outofbandrequired",
        "multifactorresponsefailed",
        "otp",
    )
    MICROSOFT_AUTHENTICATOR = (
        "Microsoft Authenticator Code",
        "microsoftauthrequired",
        "microsoftauthfailed",
        "otp",
    )

    def __init__(
        self, display_name: str, cause: str, failure_cause: str, parameter: str
    ) -> None:
        self.display_name = display_name
        self.cause = cause
        self.failure_cause = failure_cause
        self.parameter = parameter

    @classmethod
    def from_cause(cls, cause: Optional[str]) -> Optional[MultifactorType]:
        """Return the challenge type triggered by ``cause``, if any."""
        for member in cls:
            if member.cause == cause:
                return member
        return None


# =============================================================================
# REQUEST PARAMETERS
# =============================================================================


@attrs.define
class LoginParameters:
    """
    Ordered name/value parameters of a negotiation request.

    INVARIANT: a name appears at most once
    INVARIANT: setting an existing name overwrites the value in place,
               keeping its original position
    INVARIANT: parameters are never removed

    A single instance is built per negotiation and passed by reference to
    every step, so each step sees what earlier steps added.
    """

    _values: Dict[str, str] = attrs.field(factory=dict, alias="_values")

    def set(self, name: str, value: str) -> None:
        """Insert ``name`` or overwrite its value."""
        self._values[name] = value

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(name, default)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._values.items()))

    def as_dict(self) -> Dict[str, str]:
        """Copy of the parameters in request order."""
        return dict(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))


# =============================================================================
# SESSION AND RESULT TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class Session:
    """
    Authenticated session returned by a successful login.

    INVARIANT: uid, session_id and token are non-empty

    The ``server`` is the host that accepted the login; follow-up requests
    such as trust registration must go there.
    """

    uid: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    session_id: str = field(
        validator=[validators.instance_of(str), validators.min_len(1)], repr=False
    )
    token: str = field(
        validator=[validators.instance_of(str), validators.min_len(1)], repr=False
    )
    server: str = ""
    private_key: Optional[bytes] = field(default=None, repr=False)

    def bound_to(self, server: str) -> Session:
        """Return a copy of this session bound to ``server``."""
        return attrs.evolve(self, server=server)


@attrs.define(frozen=True, slots=True)
class AuthResult:
    """
    Result of a login negotiation.

    Attributes:
        success: Whether a session was established
        session: The session (if success)
        failure_kind: Classification of the failure (if failure)
        error_message: Human-readable error message (if failure)
        cause: Server cause token that ended the negotiation, if any
    """

    success: bool
    session: Optional[Session] = None
    failure_kind: Optional[FailureKind] = None
    error_message: str = ""
    cause: Optional[str] = None

    def __attrs_post_init__(self) -> None:
        if self.success:
            if self.session is None:
                raise ValueError("Successful login must have a session")
            if self.error_message:
                raise ValueError("Successful login must not have an error_message")
        else:
            if self.session is not None:
                raise ValueError("Failed login must not have a session")
            if not self.error_message:
                raise ValueError("Failed login must have error_message")

    @classmethod
    def success_result(cls, session: Session) -> AuthResult:
        """Create a successful login result."""
        return cls(success=True, session=session)

    @classmethod
    def failure_result(cls, error: LoginError) -> AuthResult:
        """Create a failed login result from a login error."""
        return cls(
            success=False,
            failure_kind=FailureKind.from_error(error),
            error_message=error.message,
            cause=error.code,
        )
