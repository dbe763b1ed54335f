"""
OpenSSL-compatible envelope decryption for deploy payloads.

Payloads are produced with the classic `openssl enc` format:

    openssl enc -aes-256-cbc -md md5 -salt -base64 -pass pass:<secret>

which yields base64("Salted__" + 8-byte salt + AES-256-CBC ciphertext).
The key and IV are derived with EVP_BytesToKey using a single MD5 round.
MD5 is fixed by the producing side; payloads only decrypt with the same
digest.

Everything in this module is pure and holds no state, so it is safe to
call from concurrent requests.
"""

import base64
import binascii
import hashlib
import logging
import os
from typing import Optional, Tuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import (
    InvalidCiphertextLength,
    InvalidPadding,
    MalformedEncoding,
    MalformedEnvelope,
)

logger = logging.getLogger(__name__)

SALT_MARKER = b"Salted__"
SALT_LENGTH = 8
HEADER_LENGTH = len(SALT_MARKER) + SALT_LENGTH  # 16
KEY_LENGTH = 32  # AES-256
IV_LENGTH = 16
BLOCK_SIZE = 16  # bytes


def evp_bytes_to_key(
    password: bytes,
    salt: bytes,
    key_len: int = KEY_LENGTH,
    iv_len: int = IV_LENGTH,
) -> Tuple[bytes, bytes]:
    """
    Derive a key/IV pair the way OpenSSL's EVP_BytesToKey does (MD5, 1 round).

    digest_i = MD5(digest_{i-1} || password || salt), digest_0 = b"", and the
    digests are concatenated until key_len + iv_len bytes are available.

    Args:
        password: Passphrase bytes
        salt: 8-byte salt taken from the envelope header
        key_len: Key length in bytes (32 for AES-256)
        iv_len: IV length in bytes (16 for AES-CBC)

    Returns:
        Tuple of (key, iv)

    Examples:
        >>> key, iv = evp_bytes_to_key(b"secret", b"12345678")
        >>> len(key), len(iv)
        (32, 16)
    """
    total_len = key_len + iv_len
    derived = b""
    previous = b""

    while len(derived) < total_len:
        previous = hashlib.md5(previous + password + salt).digest()
        derived += previous

    return derived[:key_len], derived[key_len:total_len]


def _decode_envelope(envelope_b64: str) -> bytes:
    # openssl -base64 wraps lines at 64 columns
    compact = "".join(envelope_b64.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedEncoding(f"the content is not valid base64: {e}")


def _split_envelope(raw: bytes) -> Tuple[bytes, bytes]:
    """Return (salt, ciphertext) after validating the envelope header."""
    if len(raw) < HEADER_LENGTH or raw[:len(SALT_MARKER)] != SALT_MARKER:
        raise MalformedEnvelope(
            "the ciphertext format is incorrect and the Salted__ header is missing"
        )
    return raw[len(SALT_MARKER):HEADER_LENGTH], raw[HEADER_LENGTH:]


def _unpad(data: bytes) -> bytes:
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    try:
        return unpadder.update(data) + unpadder.finalize()
    except ValueError:
        raise InvalidPadding("pkcs7: invalid padding")


def decrypt_envelope(envelope_b64: str, passphrase: str) -> bytes:
    """
    Decrypt a base64 "Salted__" envelope with the shared passphrase.

    All structural checks run before any cipher work, so a malformed
    envelope never reaches AES.

    Args:
        envelope_b64: base64("Salted__" + salt + ciphertext)
        passphrase: Shared secret configured on the agent

    Returns:
        Unpadded plaintext bytes

    Raises:
        MalformedEncoding: Input is not valid base64
        MalformedEnvelope: Input is shorter than 16 bytes or lacks the marker
        InvalidCiphertextLength: Ciphertext is not a multiple of 16 bytes
        InvalidPadding: PKCS#7 padding check failed
    """
    raw = _decode_envelope(envelope_b64)
    salt, ciphertext = _split_envelope(raw)

    if len(ciphertext) % BLOCK_SIZE != 0:
        raise InvalidCiphertextLength(
            "the ciphertext length is not a multiple of the block size"
        )

    key, iv = evp_bytes_to_key(passphrase.encode("utf-8"), salt)

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    plaintext = _unpad(padded)
    logger.debug(f"Decrypted envelope ({len(ciphertext)} bytes of ciphertext)")
    return plaintext


def encrypt_envelope(
    plaintext: bytes,
    passphrase: str,
    salt: Optional[bytes] = None,
) -> str:
    """
    Produce an envelope that decrypt_envelope (and `openssl enc -d`) accepts.

    Args:
        plaintext: Configuration bytes to encrypt
        passphrase: Shared secret
        salt: Optional fixed 8-byte salt; random when omitted

    Returns:
        base64 string of "Salted__" + salt + ciphertext
    """
    if salt is None:
        salt = os.urandom(SALT_LENGTH)
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"salt must be {SALT_LENGTH} bytes, got {len(salt)}")

    key, iv = evp_bytes_to_key(passphrase.encode("utf-8"), salt)

    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return base64.b64encode(SALT_MARKER + salt + ciphertext).decode("ascii")
