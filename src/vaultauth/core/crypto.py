"""
VaultAuth Cryptographic Operations

Wrapper around the cryptography library for the one decryption the login
needs: recovering the account private key that the server returns inside a
successful login reply.

Key derivation is the caller's job; this module only consumes the derived
key. Uses established libraries - NO custom cryptographic implementations.
"""

from __future__ import annotations

import binascii
from typing import Optional

import structlog
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend

from vaultauth.core.exceptions import VaultAuthError

logger = structlog.get_logger()

KEY_LENGTH = 32
PRIVATE_KEY_PREFIX = b"LastPassPrivateKey<"
PRIVATE_KEY_SUFFIX = b">LastPassPrivateKey"


class CryptoError(VaultAuthError):
    """Decryption of server supplied material failed."""

    pass


def decrypt_aes_cbc(key: bytes, ciphertext: bytes, iv: bytes) -> bytes:
    """
    Decrypt AES-256-CBC with PKCS#7 padding.

    Args:
        key: 32 byte key
        ciphertext: Encrypted data, a multiple of the block size
        iv: 16 byte initialization vector

    Returns:
        Unpadded plaintext

    Raises:
        CryptoError: If the key, IV or padding is invalid
    """
    if len(key) != KEY_LENGTH:
        raise CryptoError(f"Key must be {KEY_LENGTH} bytes, got {len(key)}")
    if not ciphertext or len(ciphertext) % 16:
        raise CryptoError("Ciphertext is not a whole number of blocks")

    try:
        cipher = Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend())
        decryptor = cipher.decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(128).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise CryptoError(f"AES decryption failed: {e}") from e


def decrypt_private_key(encrypted_hex: str, key: bytes) -> Optional[bytes]:
    """
    Recover the DER encoded account private key.

    The server sends the key hex encoded and encrypted with the derived
    key, using the first 16 bytes of the key as IV. The plaintext is the
    hex encoded DER key framed by ``LastPassPrivateKey<`` and
    ``>LastPassPrivateKey``.

    Args:
        encrypted_hex: ``privatekeyenc`` value from the login reply
        key: Derived login key

    Returns:
        DER bytes, or None if the material cannot be decrypted or decoded
    """
    if not encrypted_hex:
        return None

    try:
        ciphertext = binascii.unhexlify(encrypted_hex)
        plaintext = decrypt_aes_cbc(key, ciphertext, key[:16])
    except (binascii.Error, ValueError, CryptoError) as e:
        logger.warning("private_key_decrypt_failed", error=str(e))
        return None

    if not (
        plaintext.startswith(PRIVATE_KEY_PREFIX)
        and plaintext.endswith(PRIVATE_KEY_SUFFIX)
    ):
        logger.warning("private_key_bad_framing")
        return None

    inner = plaintext[len(PRIVATE_KEY_PREFIX) : -len(PRIVATE_KEY_SUFFIX)]
    try:
        return binascii.unhexlify(inner)
    except (binascii.Error, ValueError) as e:
        logger.warning("private_key_decode_failed", error=str(e))
        return None
