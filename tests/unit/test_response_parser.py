"""
Unit tests for vaultauth.transport.response_parser and vaultauth.core.crypto.

Tests reply interpretation and private key recovery.
"""

import binascii

import pytest

from vaultauth.core.crypto import CryptoError, decrypt_aes_cbc, decrypt_private_key
from tests.conftest import TEST_KEY, encrypt_private_key, error_reply, ok_reply


class TestErrorField:
    """Tests for error field lookup."""

    def test_cause(self, parser):
        """Test cause attribute is returned."""
        reply = error_reply(cause="otprequired", message="Enter your code.")
        assert parser.error_field(reply, "cause") == "otprequired"
        assert parser.error_field(reply, "message") == "Enter your code."

    def test_missing_field(self, parser):
        """Test absent attribute returns None."""
        reply = error_reply(cause="otprequired")
        assert parser.error_field(reply, "retryid") is None

    def test_bare_error_root(self, parser):
        """Test <error> without <response> wrapper is accepted."""
        assert parser.error_field('<error cause="unknownemail"/>', "cause") == "unknownemail"

    def test_ok_reply_has_no_error_fields(self, parser):
        """Test success replies have no error fields."""
        assert parser.error_field(ok_reply(), "cause") is None

    def test_malformed_xml(self, parser):
        """Test malformed documents yield None."""
        assert parser.error_field("<response><error cause=", "cause") is None
        assert parser.error_field("", "cause") is None

    def test_other_root(self, parser):
        """Test unrelated documents yield None."""
        assert parser.error_field('<html cause="x"/>', "cause") is None


class TestParseSession:
    """Tests for session parsing."""

    def test_ok_reply(self, parser, test_key):
        """Test well-formed success reply yields a session."""
        session = parser.parse_session(
            ok_reply(uid="42", sessionid="sid", token="tok"), test_key
        )
        assert session is not None
        assert session.uid == "42"
        assert session.session_id == "sid"
        assert session.token == "tok"
        assert session.server == ""

    def test_error_reply(self, parser, test_key):
        """Test error replies yield no session."""
        assert parser.parse_session(error_reply(cause="otprequired"), test_key) is None

    def test_incomplete_ok(self, parser, test_key):
        """Test success reply without token is not a session."""
        reply = '<response><ok uid="1" sessionid="s"/></response>'
        assert parser.parse_session(reply, test_key) is None

    def test_malformed(self, parser, test_key):
        """Test malformed documents yield no session."""
        assert parser.parse_session("not xml", test_key) is None

    def test_private_key_decrypted(self, parser, test_key):
        """Test encrypted private key is recovered."""
        der = b"\x30\x82\x01\x0a-private-key-der"
        reply = ok_reply(privatekeyenc=encrypt_private_key(der, test_key))
        session = parser.parse_session(reply, test_key)
        assert session is not None
        assert session.private_key == der

    def test_private_key_wrong_key(self, parser):
        """Test undecryptable private key leaves session valid without it."""
        reply = ok_reply(privatekeyenc=encrypt_private_key(b"der", TEST_KEY))
        session = parser.parse_session(reply, bytes(32))
        assert session is not None
        assert session.private_key is None


class TestCrypto:
    """Tests for private key decryption helpers."""

    def test_decrypt_roundtrip(self, test_key):
        """Test decrypt_private_key recovers the DER bytes."""
        der = bytes(range(200))
        assert decrypt_private_key(encrypt_private_key(der, test_key), test_key) == der

    def test_empty_input(self, test_key):
        """Test empty material yields None."""
        assert decrypt_private_key("", test_key) is None

    def test_not_hex(self, test_key):
        """Test non-hex material yields None."""
        assert decrypt_private_key("zz-not-hex", test_key) is None

    def test_bad_key_length(self):
        """Test short keys are rejected."""
        with pytest.raises(CryptoError):
            decrypt_aes_cbc(b"short", b"\x00" * 16, b"\x00" * 16)

    def test_partial_block(self, test_key):
        """Test ciphertext that is not block aligned is rejected."""
        with pytest.raises(CryptoError):
            decrypt_aes_cbc(test_key, b"\x00" * 15, test_key[:16])

    def test_bad_framing(self, test_key):
        """Test plaintext without the private key framing yields None."""
        from cryptography.hazmat.primitives import padding
        from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

        padder = padding.PKCS7(128).padder()
        padded = padder.update(b"just some text") + padder.finalize()
        encryptor = Cipher(algorithms.AES(test_key), modes.CBC(test_key[:16])).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()

        assert decrypt_private_key(binascii.hexlify(ciphertext).decode(), test_key) is None
