"""
VaultAuth Login Client

Client side of the account login negotiation.

A login is a short conversation with the service:

1. Primary login with the credential hash. The service may redirect once
   to its alternate regional server.
2. If the service asks for out-of-band approval (a push to a phone, say),
   poll until it is approved or denied, falling back to passcode entry
   when the approval method offers one.
3. If the service asks for a one-time code, prompt for it and resubmit
   until it is accepted, rejected for good, or the user gives up.
4. After an approved out-of-band login, optionally register this device
   as trusted so the next login can skip step 2.

Every step extends one shared LoginParameters instance, so parameters set
early (trust identifier, out-of-band markers) travel with every later
request of the same negotiation.
"""

from __future__ import annotations

import os
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

import attrs
import structlog
from returns.result import Failure, Result, Success

from vaultauth.console.prompt import CodePrompt, console_prompt
from vaultauth.console.status import StatusDisplay, TerminalStatus
from vaultauth.core.exceptions import (
    ChallengeFailure,
    LoginError,
    ProtocolFailure,
    SecondFactorRequired,
    StateError,
    TransportFailure,
    UnspecifiedFailure,
    UserAbort,
    VaultAuthError,
)
from vaultauth.core.state_machine import StateMachineBase, Transition, TransitionEntry
from vaultauth.core.types import AuthResult, FailureKind, LoginParameters, MultifactorType, Session
from vaultauth.login.types import (
    CAPABILITY_OUT_OF_BAND,
    CAPABILITY_PASSCODE,
    DEFAULT_SERVER,
    LOGIN_ENDPOINT,
    LOGIN_METHOD,
    MSG_INVALID_CODE,
    MSG_NO_CAUSE,
    MSG_NO_OOB_TYPE,
    MSG_POLL_LIMIT,
    MSG_UNPARSABLE,
    OUT_OF_BAND_CAUSE,
    PROTOCOL_VERSION,
    REDIRECT_SERVER,
    TRUST_ENDPOINT,
    ApprovalPending,
    CodeRejected,
    CodeSubmitted,
    LoginFailed,
    LoginSucceeded,
    MultifactorChallenged,
    NegotiationContext,
    NegotiationState,
    OutOfBandChallenged,
    PasscodeFallback,
    PrimaryLoginSent,
    RedirectReceived,
    filter_error_message,
    has_capability,
    redact_parameters,
)
from vaultauth.transport.http_transport import DEFAULT_TIMEOUT, HTTPTransport, Transport
from vaultauth.transport.response_parser import ResponseParser, XMLResponseParser
from vaultauth.trust.device import calculate_trust_id, calculate_trust_label
from vaultauth.trust.store import FileTrustStore, TrustStore

logger = structlog.get_logger()


# =============================================================================
# CONFIGURATION
# =============================================================================


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@attrs.define
class LoginConfig:
    """
    Login negotiation configuration.

    Attributes:
        server: Server the primary login is sent to
        redirect_servers: Servers a redirect directive may point to
        max_redirects: Redirect hops followed per negotiation
        max_oob_polls: Out-of-band polls before giving up (None = unbounded)
        method: Client method identifier sent with every login
        protocol_version: Reply format version requested from the server
        timeout: Transport timeout in seconds
    """

    server: str = DEFAULT_SERVER
    redirect_servers: FrozenSet[str] = attrs.field(
        default=frozenset({REDIRECT_SERVER}), converter=frozenset
    )
    max_redirects: int = attrs.field(default=1, validator=attrs.validators.ge(0))
    max_oob_polls: Optional[int] = attrs.field(
        default=None,
        validator=attrs.validators.optional(attrs.validators.ge(1)),
    )
    method: str = LOGIN_METHOD
    protocol_version: str = PROTOCOL_VERSION
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "LoginConfig":
        """
        Create config from environment variables.

        Reads VAULTAUTH_SERVER, VAULTAUTH_MAX_OOB_POLLS and
        VAULTAUTH_TIMEOUT; unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("VAULTAUTH_SERVER"):
            config = attrs.evolve(config, server=env["VAULTAUTH_SERVER"])
        if env.get("VAULTAUTH_MAX_OOB_POLLS"):
            config = attrs.evolve(
                config, max_oob_polls=_optional_int(env["VAULTAUTH_MAX_OOB_POLLS"])
            )
        if env.get("VAULTAUTH_TIMEOUT"):
            config = attrs.evolve(config, timeout=float(env["VAULTAUTH_TIMEOUT"]))
        return config


# =============================================================================
# NEGOTIATION STATE MACHINE
# =============================================================================


@attrs.define
class NegotiationStateMachine(
    StateMachineBase[NegotiationState, Any, NegotiationContext]
):
    """
    State machine for one login negotiation.

    States:
    - INITIAL: Nothing sent
    - PRIMARY_ATTEMPTED: Primary login posted
    - REDIRECTED: Primary login re-posted to the alternate server
    - OUT_OF_BAND_POLLING: Waiting for out-of-band approval
    - OUT_OF_BAND_PASSCODE_FALLBACK: Switching from approval to passcode
    - MULTIFACTOR_PROMPTING: Prompting for one-time codes
    - SUCCESS: Session established
    - FAILED: Negotiation ended without a session
    """

    # Retry identifiers are server issued tokens
    redacted_fields = frozenset({"retry_id"})

    def initial_state(self) -> NegotiationState:
        return NegotiationState.INITIAL

    def terminal_states(self) -> FrozenSet[NegotiationState]:
        return frozenset({NegotiationState.SUCCESS, NegotiationState.FAILED})

    def transition_table(
        self,
    ) -> Dict[Tuple[NegotiationState, type], TransitionEntry]:
        table: Dict[Tuple[NegotiationState, type], TransitionEntry] = {
            (NegotiationState.INITIAL, PrimaryLoginSent): (
                NegotiationState.PRIMARY_ATTEMPTED,
                self._handle_primary,
            ),
            (NegotiationState.PRIMARY_ATTEMPTED, RedirectReceived): (
                NegotiationState.REDIRECTED,
                self._handle_redirect,
            ),
            (NegotiationState.REDIRECTED, RedirectReceived): (
                NegotiationState.REDIRECTED,
                self._handle_redirect,
            ),
            (NegotiationState.OUT_OF_BAND_POLLING, ApprovalPending): (
                NegotiationState.OUT_OF_BAND_POLLING,
                self._handle_approval_pending,
            ),
            (NegotiationState.OUT_OF_BAND_POLLING, PasscodeFallback): (
                NegotiationState.OUT_OF_BAND_PASSCODE_FALLBACK,
                self._handle_fallback,
            ),
            (NegotiationState.OUT_OF_BAND_PASSCODE_FALLBACK, MultifactorChallenged): (
                NegotiationState.MULTIFACTOR_PROMPTING,
                self._handle_multifactor_challenge,
            ),
            (NegotiationState.MULTIFACTOR_PROMPTING, CodeSubmitted): (
                NegotiationState.MULTIFACTOR_PROMPTING,
                self._handle_code_submitted,
            ),
            (NegotiationState.MULTIFACTOR_PROMPTING, CodeRejected): (
                NegotiationState.MULTIFACTOR_PROMPTING,
                self._handle_code_rejected,
            ),
        }

        for state in (NegotiationState.PRIMARY_ATTEMPTED, NegotiationState.REDIRECTED):
            table[(state, OutOfBandChallenged)] = (
                NegotiationState.OUT_OF_BAND_POLLING,
                self._handle_out_of_band_challenge,
            )
            table[(state, MultifactorChallenged)] = (
                NegotiationState.MULTIFACTOR_PROMPTING,
                self._handle_multifactor_challenge,
            )

        for state in NegotiationState:
            if state.is_terminal or state == NegotiationState.INITIAL:
                continue
            if state != NegotiationState.OUT_OF_BAND_PASSCODE_FALLBACK:
                table[(state, LoginSucceeded)] = (
                    NegotiationState.SUCCESS,
                    self._handle_success,
                )
            table[(state, LoginFailed)] = (
                NegotiationState.FAILED,
                self._handle_failure,
            )

        return table

    @staticmethod
    def _handle_primary(
        event: PrimaryLoginSent, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, username=event.username, server=event.server)

    @staticmethod
    def _handle_redirect(
        event: RedirectReceived, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, server=event.server, redirects=ctx.redirects + 1)

    @staticmethod
    def _handle_out_of_band_challenge(
        event: OutOfBandChallenged, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(
            ctx,
            cause=OUT_OF_BAND_CAUSE,
            challenge_name=event.name,
            can_passcode=event.can_passcode,
        )

    @staticmethod
    def _handle_approval_pending(
        event: ApprovalPending, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(
            ctx,
            polls=ctx.polls + 1,
            retry_id=event.retry_id or ctx.retry_id,
        )

    @staticmethod
    def _handle_fallback(
        event: PasscodeFallback, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, challenge_name=event.name)

    @staticmethod
    def _handle_multifactor_challenge(
        event: MultifactorChallenged, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, cause=event.cause, challenge_name=event.name)

    @staticmethod
    def _handle_code_submitted(
        event: CodeSubmitted, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, code_attempts=ctx.code_attempts + 1)

    @staticmethod
    def _handle_code_rejected(
        event: CodeRejected, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, rejected_codes=ctx.rejected_codes + 1)

    @staticmethod
    def _handle_success(
        event: LoginSucceeded, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(ctx, server=event.server)

    @staticmethod
    def _handle_failure(
        event: LoginFailed, ctx: NegotiationContext
    ) -> NegotiationContext:
        return attrs.evolve(
            ctx,
            failure_kind=event.failure_kind,
            error_message=event.error_message,
            cause=event.cause or ctx.cause,
        )


def _new_state_machine() -> NegotiationStateMachine:
    return NegotiationStateMachine(
        _state=NegotiationState.INITIAL,
        _context=NegotiationContext(),
    )


# =============================================================================
# NEGOTIATION
# =============================================================================


@attrs.define
class Negotiation:
    """
    One run of the login negotiation.

    Owns the request parameters and the state machine of a single login;
    concurrent logins each get their own instance.
    """

    username: str
    key: bytes = attrs.field(repr=False)
    parameters: LoginParameters
    transport: Transport
    parser: ResponseParser
    prompt: CodePrompt
    status: StatusDisplay
    config: LoginConfig
    trust: bool = False
    trust_id: Optional[str] = attrs.field(default=None, repr=False)
    trust_label: Optional[str] = None

    # Latest reply; replaced by every request
    reply: Optional[str] = attrs.field(default=None, repr=False)

    _state_machine: NegotiationStateMachine = attrs.Factory(_new_state_machine)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        """Add invariants to state machine."""
        self._state_machine.add_invariant("redirect_limit", self._redirect_limit)
        self._state_machine.add_invariant("poll_limit", self._poll_limit)
        self._state_machine.add_invariant(
            "failure_has_message", self._failure_has_message
        )

    def _redirect_limit(self, state: NegotiationState, ctx: NegotiationContext) -> bool:
        """Invariant: never follow more redirects than configured."""
        return ctx.redirects <= self.config.max_redirects

    def _poll_limit(self, state: NegotiationState, ctx: NegotiationContext) -> bool:
        """Invariant: never exceed the configured out-of-band poll ceiling."""
        if self.config.max_oob_polls is None:
            return True
        return ctx.polls <= self.config.max_oob_polls

    @staticmethod
    def _failure_has_message(state: NegotiationState, ctx: NegotiationContext) -> bool:
        """Invariant: a failed negotiation always explains itself."""
        if state == NegotiationState.FAILED:
            return bool(ctx.error_message)
        return True

    @property
    def state(self) -> NegotiationState:
        """Current negotiation state."""
        return self._state_machine.state

    @property
    def context(self) -> NegotiationContext:
        """Current context (read-only)."""
        return self._state_machine.context

    @property
    def state_machine(self) -> NegotiationStateMachine:
        return self._state_machine

    # -------------------------------------------------------------------------
    # Orchestration
    # -------------------------------------------------------------------------

    def run(self) -> AuthResult:
        """
        Drive the negotiation to SUCCESS or FAILED.

        Returns:
            AuthResult with the session or the failure description
        """
        self._fire(PrimaryLoginSent(username=self.username, server=self.config.server))

        primary = self.primary_login(self.config.server)
        if isinstance(primary, Success):
            return self._succeed(primary.unwrap())

        required = primary.failure()
        if not isinstance(required, SecondFactorRequired):
            return self._fail(required)

        if self.trust:
            if self.trust_label is None:
                self.trust_label = calculate_trust_label()
            self.parameters.set("trustlabel", self.trust_label)

        name: Optional[str] = None
        if required.cause == OUT_OF_BAND_CAUSE:
            approval = self.out_of_band_login(required.server)
            if isinstance(approval, Success):
                session = approval.unwrap()
                if self.trust:
                    self.register_trust(session)
                return self._succeed(session)

            fallback = approval.failure()
            if not isinstance(fallback, SecondFactorRequired):
                return self._fail(fallback)
            name = fallback.name

        otp = self.multifactor_login(required.server, required.cause, name)
        if isinstance(otp, Success):
            return self._succeed(otp.unwrap())
        return self._fail(otp.failure())

    def _succeed(self, session: Session) -> AuthResult:
        self._fire(LoginSucceeded(server=session.server))
        self._logger.info(
            "login_succeeded",
            username=self.username,
            server=session.server,
        )
        return AuthResult.success_result(session)

    def _fail(self, error: VaultAuthError) -> AuthResult:
        if not isinstance(error, LoginError):
            error = UnspecifiedFailure()
        kind = FailureKind.from_error(error)
        self._fire(
            LoginFailed(failure_kind=kind, error_message=error.message, cause=error.code)
        )
        self._logger.warning(
            "login_failed",
            username=self.username,
            failure_kind=kind.name,
            cause=error.code,
            error=error.message,
        )
        return AuthResult.failure_result(error)

    def _fire(self, event: Any) -> None:
        result = self._state_machine.process_event(event)
        if isinstance(result, Failure):
            raise StateError(result.failure())

    # -------------------------------------------------------------------------
    # Attempt executor
    # -------------------------------------------------------------------------

    def _attempt(self, server: str) -> Result[Session, Optional[str]]:
        """
        Post the current parameters to ``server``.

        Returns:
            Success(session) if the login was accepted,
            Failure(reply) for an error reply,
            Failure(None) if no reply was received
        """
        self._logger.debug(
            "login_attempt",
            server=server,
            parameters=redact_parameters(self.parameters.as_dict()),
        )
        self.reply = self.transport.post(server, LOGIN_ENDPOINT, self.parameters)
        if self.reply is None:
            return Failure(None)

        session = self.parser.parse_session(self.reply, self.key)
        if session is not None:
            return Success(session.bound_to(server))
        return Failure(self.reply)

    def _server_error(
        self,
        reply: str,
        cause: Optional[str],
        error_class: type = ProtocolFailure,
    ) -> LoginError:
        """Build a terminal error from the server's own message."""
        message = self.parser.error_field(reply, "message") or ""
        # A message that is nothing but the upsell filters down to empty
        message = filter_error_message(message) or MSG_UNPARSABLE
        return error_class(message, code=cause)

    # -------------------------------------------------------------------------
    # Primary login
    # -------------------------------------------------------------------------

    def primary_login(self, server: str) -> Result[Session, VaultAuthError]:
        """
        Attempt the primary login, following the regional redirect.

        Returns:
            Success(session),
            Failure(SecondFactorRequired) naming the cause to route on, or
            Failure(LoginError) for a terminal failure
        """
        while True:
            outcome = self._attempt(server)
            if isinstance(outcome, Success):
                return outcome

            reply = outcome.failure()
            if reply is None:
                return Failure(TransportFailure())

            redirect = self.parser.error_field(reply, "server")
            if self._may_follow(redirect):
                self._logger.info("redirect_followed", from_server=server, to_server=redirect)
                self._fire(RedirectReceived(server=redirect))
                server = redirect
                continue

            cause = self.parser.error_field(reply, "cause")
            if not cause:
                return Failure(ProtocolFailure(MSG_NO_CAUSE))

            self._logger.info("secondary_verification_required", cause=cause, server=server)
            return Failure(SecondFactorRequired(cause=cause, server=server))

    def _may_follow(self, redirect: Optional[str]) -> bool:
        if not redirect or redirect not in self.config.redirect_servers:
            return False
        return self.context.redirects < self.config.max_redirects

    # -------------------------------------------------------------------------
    # Out-of-band approval
    # -------------------------------------------------------------------------

    def out_of_band_login(self, server: str) -> Result[Session, VaultAuthError]:
        """
        Wait for out-of-band approval of the login.

        Reads the challenge from the latest reply. When the method also
        accepts a passcode and polling is impossible or interrupted, the
        step hands over to passcode entry.

        Returns:
            Success(session),
            Failure(SecondFactorRequired) to continue with passcode entry, or
            Failure(LoginError) for a terminal failure
        """
        reply = self.reply or ""
        name = self.parser.error_field(reply, "outofbandname")
        capabilities = self.parser.error_field(reply, "capabilities")
        if not name or not capabilities:
            return Failure(ProtocolFailure(MSG_NO_OOB_TYPE, code=OUT_OF_BAND_CAUSE))

        can_passcode = has_capability(capabilities, CAPABILITY_PASSCODE)
        self._fire(OutOfBandChallenged(name=name, can_passcode=can_passcode))

        if can_passcode and not has_capability(capabilities, CAPABILITY_OUT_OF_BAND):
            return self._passcode_fallback(server, name)

        self._show("waiting", name, can_passcode)
        try:
            return self._poll_for_approval(server, name, can_passcode)
        finally:
            self._show("clear")

    def _poll_for_approval(
        self, server: str, name: str, can_passcode: bool
    ) -> Result[Session, VaultAuthError]:
        self.parameters.set("outofbandrequest", "1")
        polls = 0

        while True:
            if self.config.max_oob_polls is not None and polls >= self.config.max_oob_polls:
                return Failure(ProtocolFailure(MSG_POLL_LIMIT, code=OUT_OF_BAND_CAUSE))
            polls += 1

            try:
                outcome = self._attempt(server)
            except KeyboardInterrupt:
                if not can_passcode:
                    raise
                self._logger.info("oob_poll_interrupted", server=server)
                outcome = Failure(None)

            if isinstance(outcome, Success):
                return outcome

            reply = outcome.failure()
            if reply is None:
                if not can_passcode:
                    return Failure(TransportFailure())
                self.parameters.set("outofbandrequest", "0")
                self.parameters.set("outofbandretry", "0")
                self.parameters.set("outofbandretryid", "")
                return self._passcode_fallback(server, name)

            cause = self.parser.error_field(reply, "cause")
            if cause != OUT_OF_BAND_CAUSE:
                return Failure(self._server_error(reply, cause, ChallengeFailure))

            retry_id = (
                self.parser.error_field(reply, "retryid")
                or self.parameters.get("outofbandretryid")
                or ""
            )
            self.parameters.set("outofbandretry", "1")
            self.parameters.set("outofbandretryid", retry_id)
            self._fire(ApprovalPending(retry_id=retry_id or None))
            self._logger.debug("oob_poll", server=server, polls=polls)
            self._show("tick")

    def _passcode_fallback(self, server: str, name: str) -> Result[Session, VaultAuthError]:
        otp_name = f"{name} OTP"
        self._fire(PasscodeFallback(name=otp_name))
        self._logger.info("oob_passcode_fallback", name=otp_name)
        return Failure(SecondFactorRequired(cause=OUT_OF_BAND_CAUSE, server=server, name=otp_name))

    def _show(self, method: str, *args: Any) -> None:
        try:
            getattr(self.status, method)(*args)
        except Exception as e:
            self._logger.debug("status_display_failed", method=method, error=str(e))

    # -------------------------------------------------------------------------
    # Multifactor codes
    # -------------------------------------------------------------------------

    def multifactor_login(
        self,
        server: str,
        cause: str,
        name: Optional[str] = None,
    ) -> Result[Session, LoginError]:
        """
        Prompt for one-time codes until one is accepted.

        Args:
            server: Server that issued the challenge
            cause: Challenge cause token
            name: Display name overriding the challenge type's own

        Returns:
            Success(session) or Failure(LoginError)
        """
        factor = MultifactorType.from_cause(cause)
        if factor is None:
            return Failure(self._server_error(self.reply or "", cause))

        display_name = name or factor.display_name
        self._fire(MultifactorChallenged(cause=cause, name=display_name))

        error: Optional[str] = None
        while True:
            code = self.prompt(
                "Code",
                error,
                f"Please enter your {display_name} for <{self.username}>.",
            )
            if not code:
                return Failure(UserAbort())

            self.parameters.set(factor.parameter, code)
            self._fire(CodeSubmitted())

            outcome = self._attempt(server)
            if isinstance(outcome, Success):
                return outcome

            reply = outcome.failure()
            if reply is None:
                return Failure(TransportFailure())

            next_cause = self.parser.error_field(reply, "cause")
            if next_cause != factor.failure_cause:
                return Failure(self._server_error(reply, next_cause, ChallengeFailure))

            self._fire(CodeRejected())
            self._logger.info("code_rejected", factor=factor.name)
            error = MSG_INVALID_CODE

    # -------------------------------------------------------------------------
    # Trust registration
    # -------------------------------------------------------------------------

    def register_trust(self, session: Session) -> bool:
        """
        Register this device as trusted for ``session``'s account.

        Failures are logged and reported as False, never raised.
        """
        parameters = {
            "token": session.token,
            "uuid": self.trust_id or "",
            "trustlabel": self.trust_label or "",
        }
        try:
            reply = self.transport.post(
                session.server, TRUST_ENDPOINT, parameters, session=session
            )
        except Exception as e:
            self._logger.warning("trust_registration_error", error=str(e))
            return False

        if reply is None:
            self._logger.warning("trust_registration_failed", server=session.server)
            return False

        self._logger.info("trust_registered", server=session.server)
        return True


# =============================================================================
# LOGIN CLIENT
# =============================================================================


@attrs.define
class LoginClient:
    """
    High-level login client.

    Wires the negotiation to its collaborators. Every collaborator has a
    production default: HTTPS transport, XML reply parsing, a file backed
    trust store, console code entry and a terminal status line.

    Example:
        client = LoginClient()
        result = client.login(
            username="jdoe@example.com",
            credential_hash=login_hash,
            key=derived_key,
            iterations=100100,
            trust=True,
        )
        if result.success:
            print(f"Logged in on {result.session.server}")
        else:
            print(result.error_message)
    """

    config: LoginConfig = attrs.Factory(LoginConfig)
    transport: Optional[Transport] = None
    parser: ResponseParser = attrs.Factory(XMLResponseParser)
    trust_store: TrustStore = attrs.Factory(FileTrustStore)
    prompt: CodePrompt = console_prompt
    status: StatusDisplay = attrs.Factory(TerminalStatus)

    _last_negotiation: Optional[Negotiation] = None
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        if self.transport is None:
            self.transport = HTTPTransport(timeout=self.config.timeout)

    def build_parameters(
        self,
        username: str,
        credential_hash: str,
        iterations: int,
        fragment_id: Optional[str] = None,
        trust_id: Optional[str] = None,
    ) -> LoginParameters:
        """Initial request parameters, in the order the server expects."""
        parameters = LoginParameters()
        parameters.set("xml", self.config.protocol_version)
        parameters.set("username", username.lower())
        parameters.set("hash", credential_hash)
        parameters.set("iterations", str(iterations))
        parameters.set("includeprivatekeyenc", "1")
        parameters.set("method", self.config.method)
        parameters.set("outofbandsupported", "1")
        if fragment_id:
            parameters.set("alpfragmentid", fragment_id)
            parameters.set("calculatedfragmentid", fragment_id)
        if trust_id:
            parameters.set("uuid", trust_id)
        return parameters

    def login(
        self,
        username: str,
        credential_hash: str,
        key: bytes,
        iterations: int,
        fragment_id: Optional[str] = None,
        trust: bool = False,
    ) -> AuthResult:
        """
        Log in, running whatever secondary verification the server demands.

        Args:
            username: Account name (sent lowercased)
            credential_hash: Hex login hash derived from the password
            key: Derived key, used to decrypt the private key in the reply
            iterations: Key derivation iteration count
            fragment_id: Optional one-time fragment identifier
            trust: Remember this device so later logins skip verification

        Returns:
            AuthResult with the session or the failure description
        """
        self._logger.info(
            "login_start",
            username=username.lower(),
            server=self.config.server,
            trust=trust,
        )

        trust_id = calculate_trust_id(self.trust_store, trust)
        negotiation = Negotiation(
            username=username.lower(),
            key=key,
            parameters=self.build_parameters(
                username, credential_hash, iterations, fragment_id, trust_id
            ),
            transport=self.transport,
            parser=self.parser,
            prompt=self.prompt,
            status=self.status,
            config=self.config,
            trust=trust,
            trust_id=trust_id,
        )
        self._last_negotiation = negotiation
        return negotiation.run()

    @property
    def last_negotiation(self) -> Optional[Negotiation]:
        return self._last_negotiation

    def get_trace(self) -> List[Transition]:
        """Transitions of the most recent negotiation."""
        if self._last_negotiation is None:
            return []
        return self._last_negotiation.state_machine.get_trace()

    def export_trace_json(self) -> str:
        """Export the most recent negotiation's trace as JSON."""
        if self._last_negotiation is None:
            return _new_state_machine().export_trace_json()
        return self._last_negotiation.state_machine.export_trace_json()


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_login_client(
    server: str = DEFAULT_SERVER,
    max_oob_polls: Optional[int] = None,
    trust_store: Optional[TrustStore] = None,
) -> LoginClient:
    """
    Create a login client with production collaborators.

    Args:
        server: Server for the primary login
        max_oob_polls: Out-of-band poll ceiling (None = unbounded)
        trust_store: Store for the device trust identifier

    Returns:
        Configured LoginClient
    """
    config = LoginConfig(server=server, max_oob_polls=max_oob_polls)
    if trust_store is None:
        return LoginClient(config=config)
    return LoginClient(config=config, trust_store=trust_store)


def lastpass_login(
    username: str,
    credential_hash: str,
    key: bytes,
    iterations: int,
    fragment_id: Optional[str] = None,
    trust: bool = False,
    client: Optional[LoginClient] = None,
) -> Tuple[Optional[Session], Optional[str]]:
    """
    Log in and return ``(session, None)`` or ``(None, error_message)``.

    Thin tuple-shaped wrapper around LoginClient.login.
    """
    client = client or LoginClient()
    result = client.login(
        username=username,
        credential_hash=credential_hash,
        key=key,
        iterations=iterations,
        fragment_id=fragment_id,
        trust=trust,
    )
    if result.success:
        return result.session, None
    return None, result.error_message
