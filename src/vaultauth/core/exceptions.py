"""
VaultAuth Exception Types

Custom exceptions for login negotiation errors.
"""

from typing import Optional

MSG_POST_FAILED = "Unable to post login request."
MSG_ABORTED = "Aborted multifactor authentication."
MSG_UNSPECIFIED = "An unspecified error occurred."


class VaultAuthError(Exception):
    """Base exception for all VaultAuth errors."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class LoginError(VaultAuthError):
    """
    Login negotiation failed.

    Base class for every terminal outcome of a negotiation that did not
    produce a session. The ``code`` carries the server cause token when
    one was reported.
    """

    pass


class TransportFailure(LoginError):
    """
    No response was received at all.

    Generic and not retried at the negotiation layer.
    """

    def __init__(self, message: str = MSG_POST_FAILED) -> None:
        super().__init__(message)


class ProtocolFailure(LoginError):
    """
    A response was received but could not be acted upon.

    The cause was missing, unrecognized, or the server reported an
    error that ends the negotiation.
    """

    pass


class ChallengeFailure(LoginError):
    """
    A recognized second factor was rejected.

    Raised only when the rejection cannot be retried, e.g. the server
    answered a submitted code with a cause other than "wrong code".
    """

    pass


class UserAbort(LoginError):
    """
    The user declined to enter a code.

    Not a server problem; reported so callers can stay quiet about it.
    """

    def __init__(self, message: str = MSG_ABORTED) -> None:
        super().__init__(message)


class UnspecifiedFailure(LoginError):
    """No step claimed the failure."""

    def __init__(self, message: str = MSG_UNSPECIFIED) -> None:
        super().__init__(message)


class SecondFactorRequired(VaultAuthError):
    """
    Primary login needs a secondary verification step.

    Not terminal: carries the cause token and the server that issued it so
    the negotiation can route to the out-of-band or multifactor step. The
    optional ``name`` overrides the challenge's display name.
    """

    def __init__(self, cause: str, server: str, name: Optional[str] = None) -> None:
        super().__init__(f"Secondary verification required: {cause}", code=cause)
        self.cause = cause
        self.server = server
        self.name = name


class StateError(VaultAuthError):
    """
    Invalid state transition.

    This indicates an attempt to perform an operation that is
    not valid in the current negotiation state.
    """

    pass


class InvariantViolation(VaultAuthError):
    """
    Negotiation invariant was violated.

    This is a serious error indicating the negotiation has entered
    an invalid state.
    """

    pass
