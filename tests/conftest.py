"""
Pytest configuration and shared fixtures for VaultAuth tests.
"""

import binascii
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Tuple

import attrs
import pytest
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend

from vaultauth.console.status import StatusDisplay
from vaultauth.core.types import LoginParameters, Session
from vaultauth.login.client import LoginClient, LoginConfig
from vaultauth.transport.http_transport import Transport
from vaultauth.transport.response_parser import XMLResponseParser
from vaultauth.trust.store import MemoryTrustStore


TEST_KEY = bytes(range(32))
TEST_HASH = "ab" * 32
TEST_ITERATIONS = 100100


# =============================================================================
# REPLY BUILDERS
# =============================================================================


def ok_reply(
    uid: str = "1001",
    sessionid: str = "sess-1",
    token: str = "tok-1",
    privatekeyenc: Optional[str] = None,
) -> str:
    """Accepted login reply."""
    attrib = {"uid": uid, "sessionid": sessionid, "token": token}
    if privatekeyenc is not None:
        attrib["privatekeyenc"] = privatekeyenc
    response = ET.Element("response")
    ET.SubElement(response, "ok", attrib)
    return ET.tostring(response, encoding="unicode")


def error_reply(**fields: str) -> str:
    """Error reply carrying ``fields`` as attributes of <error>."""
    response = ET.Element("response")
    ET.SubElement(response, "error", fields)
    return ET.tostring(response, encoding="unicode")


def encrypt_private_key(der: bytes, key: bytes = TEST_KEY) -> str:
    """Encrypt ``der`` the way the service sends it in ``privatekeyenc``."""
    plaintext = b"LastPassPrivateKey<" + binascii.hexlify(der) + b">LastPassPrivateKey"
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext) + padder.finalize()
    cipher = Cipher(algorithms.AES(key), modes.CBC(key[:16]), backend=default_backend())
    encryptor = cipher.encryptor()
    return binascii.hexlify(encryptor.update(padded) + encryptor.finalize()).decode()


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


@attrs.define
class RecordedRequest:
    server: str
    endpoint: str
    parameters: Dict[str, str]
    session: Optional[Session] = None


@attrs.define
class FakeTransport(Transport):
    """
    Transport replaying scripted replies.

    Each scripted entry is a reply string, None (transport failure) or an
    exception instance to raise.
    """

    replies: List[Any] = attrs.Factory(list)
    requests: List[RecordedRequest] = attrs.Factory(list)

    def post(self, server, endpoint, parameters, session=None):
        if isinstance(parameters, LoginParameters):
            snapshot = parameters.as_dict()
        else:
            snapshot = dict(parameters)
        self.requests.append(RecordedRequest(server, endpoint, snapshot, session))

        if not self.replies:
            raise AssertionError(f"Unexpected request to {server}/{endpoint}")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    @property
    def login_requests(self) -> List[RecordedRequest]:
        return [r for r in self.requests if r.endpoint == "login.php"]


@attrs.define
class ScriptedPrompt:
    """Code prompt answering from a script; None once exhausted."""

    codes: List[Optional[str]] = attrs.Factory(list)
    calls: List[Tuple[str, Optional[str], str]] = attrs.Factory(list)

    def __call__(self, prompt, error, description):
        self.calls.append((prompt, error, description))
        if not self.codes:
            return None
        return self.codes.pop(0)


@attrs.define
class RecordingStatus(StatusDisplay):
    """Status display remembering what it was asked to show."""

    events: List[Tuple[Any, ...]] = attrs.Factory(list)

    def waiting(self, name, can_passcode):
        self.events.append(("waiting", name, can_passcode))

    def tick(self):
        self.events.append(("tick",))

    def clear(self):
        self.events.append(("clear",))


@attrs.define
class LoginHarness:
    """A LoginClient wired to fake collaborators."""

    client: LoginClient
    transport: FakeTransport
    prompt: ScriptedPrompt
    status: RecordingStatus
    store: MemoryTrustStore

    def login(self, username: str = "JDoe@Example.com", **kwargs: Any):
        kwargs.setdefault("credential_hash", TEST_HASH)
        kwargs.setdefault("key", TEST_KEY)
        kwargs.setdefault("iterations", TEST_ITERATIONS)
        return self.client.login(username=username, **kwargs)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def test_key() -> bytes:
    """Derived login key."""
    return TEST_KEY


@pytest.fixture
def parser() -> XMLResponseParser:
    """XML reply parser."""
    return XMLResponseParser()


@pytest.fixture
def trust_store() -> MemoryTrustStore:
    """Empty in-memory trust store."""
    return MemoryTrustStore()


@pytest.fixture
def make_harness(trust_store: MemoryTrustStore):
    """Factory building a LoginHarness from scripted replies and codes."""

    def _make(
        replies: List[Any],
        codes: Optional[List[Optional[str]]] = None,
        config: Optional[LoginConfig] = None,
    ) -> LoginHarness:
        transport = FakeTransport(replies=list(replies))
        prompt = ScriptedPrompt(codes=list(codes or []))
        status = RecordingStatus()
        client = LoginClient(
            config=config or LoginConfig(),
            transport=transport,
            trust_store=trust_store,
            prompt=prompt,
            status=status,
        )
        return LoginHarness(client, transport, prompt, status, trust_store)

    return _make


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
