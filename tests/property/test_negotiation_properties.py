"""
Property-based tests for login negotiation invariants.

Tests that the negotiation, parameter set and trust identifiers keep
their guarantees across many random inputs.
"""

import json

from hypothesis import given, settings, strategies as st

from vaultauth.core.types import LoginParameters, MultifactorType
from vaultauth.login.client import LoginClient, LoginConfig
from vaultauth.login.types import MSG_INVALID_CODE, NegotiationState, has_capability
from vaultauth.trust.device import (
    TRUST_ID_ALPHABET,
    TRUST_ID_LENGTH,
    TRUST_ID_NAME,
    calculate_trust_id,
    generate_trust_id,
)
from vaultauth.trust.store import MemoryTrustStore
from tests.conftest import (
    TEST_HASH,
    TEST_KEY,
    FakeTransport,
    RecordingStatus,
    ScriptedPrompt,
    error_reply,
    ok_reply,
)


# =============================================================================
# STRATEGIES
# =============================================================================

parameter_name_strategy = st.from_regex(r"[a-z]{1,12}", fullmatch=True)
parameter_value_strategy = st.text(max_size=20)
code_strategy = st.from_regex(r"[0-9]{6}", fullmatch=True)
capability_strategy = st.sampled_from(["outofband", "passcode", "push", "sms", "voice"])
factor_strategy = st.sampled_from(
    [f for f in MultifactorType if f is not MultifactorType.OUT_OF_BAND]
)


def run_login(replies, codes=(), config=None, trust=False):
    transport = FakeTransport(replies=list(replies))
    prompt = ScriptedPrompt(codes=list(codes))
    client = LoginClient(
        config=config or LoginConfig(),
        transport=transport,
        trust_store=MemoryTrustStore(),
        prompt=prompt,
        status=RecordingStatus(),
    )
    result = client.login(
        username="jdoe@example.com",
        credential_hash=TEST_HASH,
        key=TEST_KEY,
        iterations=5000,
        trust=trust,
    )
    return client, transport, prompt, result


# =============================================================================
# PARAMETER SET PROPERTIES
# =============================================================================


class TestLoginParametersProperties:
    """Property-based tests for LoginParameters."""

    @given(st.lists(st.tuples(parameter_name_strategy, parameter_value_strategy), max_size=30))
    def test_names_unique(self, pairs):
        """Property: each name appears once, with its last value."""
        params = LoginParameters()
        for name, value in pairs:
            params.set(name, value)

        expected = {}
        for name, value in pairs:
            expected[name] = value
        assert params.as_dict() == expected
        assert len(params) == len(set(name for name, _ in pairs))

    @given(
        st.lists(parameter_name_strategy, min_size=1, max_size=10, unique=True),
        st.data(),
    )
    def test_overwrite_preserves_order(self, names, data):
        """Property: overwriting never reorders parameters."""
        params = LoginParameters()
        for name in names:
            params.set(name, "initial")

        target = data.draw(st.sampled_from(names))
        params.set(target, "updated")

        assert list(params) == names
        assert params.get(target) == "updated"


# =============================================================================
# MULTIFACTOR PROPERTIES
# =============================================================================


class TestMultifactorProperties:
    """Property-based tests for the code entry loop."""

    @given(factor_strategy, st.lists(code_strategy, min_size=1, max_size=8))
    @settings(max_examples=50)
    def test_success_after_exactly_n_retries(self, factor, codes):
        """Property: N wrong codes then a right one take N+1 submissions."""
        wrong = len(codes) - 1
        replies = (
            [error_reply(cause=factor.cause)]
            + [error_reply(cause=factor.failure_cause)] * wrong
            + [ok_reply()]
        )

        client, transport, prompt, result = run_login(replies, codes)

        assert result.success
        assert len(transport.requests) == len(codes) + 1
        assert [c[1] for c in prompt.calls] == [None] + [MSG_INVALID_CODE] * wrong
        submitted = [r.parameters[factor.parameter] for r in transport.requests[1:]]
        assert submitted == codes
        assert client.last_negotiation.context.rejected_codes == wrong

    @given(factor_strategy, st.integers(min_value=0, max_value=5))
    @settings(max_examples=30)
    def test_abort_stops_requests(self, factor, wrong):
        """Property: aborting never sends another request."""
        replies = [error_reply(cause=factor.cause)] + [
            error_reply(cause=factor.failure_cause)
        ] * wrong
        codes = ["000000"] * wrong + [None]

        client, transport, prompt, result = run_login(replies, codes)

        assert not result.success
        assert len(transport.requests) == wrong + 1
        assert client.last_negotiation.state == NegotiationState.FAILED


# =============================================================================
# OUT-OF-BAND PROPERTIES
# =============================================================================


class TestOutOfBandProperties:
    """Property-based tests for approval polling."""

    @given(
        st.lists(
            st.one_of(st.none(), st.from_regex(r"[a-z0-9]{4,8}", fullmatch=True)),
            max_size=8,
        )
    )
    @settings(max_examples=50)
    def test_retry_id_carried_forward(self, retry_ids):
        """Property: each poll carries the most recent retry identifier."""
        challenge = error_reply(
            cause="outofbandrequired", outofbandname="Duo", capabilities="outofband"
        )
        pending = [
            error_reply(cause="outofbandrequired", **({"retryid": r} if r else {}))
            for r in retry_ids
        ]

        client, transport, _, result = run_login([challenge] + pending + [ok_reply()])

        assert result.success
        current = ""
        for retry_id, request in zip(retry_ids, transport.requests[2:]):
            current = retry_id or current
            assert request.parameters["outofbandretryid"] == current
        assert client.last_negotiation.context.polls == len(retry_ids)

    @given(st.integers(min_value=1, max_value=6))
    @settings(max_examples=20)
    def test_poll_ceiling_respected(self, ceiling):
        """Property: never more polls than the configured ceiling."""
        challenge = error_reply(
            cause="outofbandrequired", outofbandname="Duo", capabilities="outofband"
        )
        pending = [error_reply(cause="outofbandrequired")] * ceiling

        client, transport, _, result = run_login(
            [challenge] + pending, config=LoginConfig(max_oob_polls=ceiling)
        )

        assert not result.success
        assert len(transport.requests) == ceiling + 1
        trace = json.loads(client.export_trace_json())
        assert trace["final_state"] == "FAILED"


# =============================================================================
# TRUST AND CAPABILITY PROPERTIES
# =============================================================================


class TestTrustProperties:
    """Property-based tests for trust identifiers."""

    @given(st.integers(min_value=0, max_value=1000))
    @settings(max_examples=50)
    def test_identifier_shape(self, _):
        """Property: identifiers have fixed length and alphabet."""
        trust_id = generate_trust_id()
        assert len(trust_id) == TRUST_ID_LENGTH
        assert all(ch in TRUST_ID_ALPHABET for ch in trust_id)

    @given(st.text(alphabet=TRUST_ID_ALPHABET, min_size=1, max_size=32), st.booleans())
    def test_stored_identifier_reused(self, stored, force):
        """Property: a stored identifier is always returned unchanged."""
        store = MemoryTrustStore(values={TRUST_ID_NAME: stored})
        assert calculate_trust_id(store, force) == stored


class TestCapabilityProperties:
    """Property-based tests for capability lists."""

    @given(st.lists(capability_strategy, max_size=5), capability_strategy)
    def test_exact_membership(self, capabilities, wanted):
        """Property: matching is exact membership of the comma list."""
        assert has_capability(",".join(capabilities), wanted) == (wanted in capabilities)

    @given(capability_strategy)
    def test_no_substring_match(self, capability):
        """Property: prefixed or suffixed names do not match."""
        assert not has_capability(f"x{capability},{capability}y", capability)
