# -*- coding: utf-8 -*-
"""Crypto helpers and key handles for NousGuard.

This module holds the *stateless* field cipher (AES-CBC-PKCS7 over UTF-8
text, Base64 on the wire), the key handle type handed out by key stores,
and the KDF/AEAD helpers the vault key store uses to seal key material.
It does **not** perform any database I/O.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple
import base64
import binascii
import hmac
import secrets

import structlog
from argon2 import PasswordHasher
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .errors import DecryptionFailed, EncryptionFailed

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------

PH = PasswordHasher(
    time_cost=2,
    memory_cost=102_400,
    parallelism=8,
    hash_len=32,
    salt_len=16,
)

SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

KEK_LEN = 32
SALT_LEN = 16
NONCE_LEN = 12

HKDF_INFO_WRAP = b"nousguard/wrap-key"

KEY_ALGORITHM = "AES"
KEY_SIZE = 256
BLOCK_MODE = "CBC"
PADDING = "PKCS7"
TRANSFORMATION = f"{KEY_ALGORITHM}/{BLOCK_MODE}/{PADDING}"

BLOCK_SIZE = algorithms.AES.block_size  # bits
IV_LEN = BLOCK_SIZE // 8

PURPOSE_ENCRYPT = "encrypt"
PURPOSE_DECRYPT = "decrypt"


# ---------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class KeySpec:
    """Generation parameters for a stored key."""

    algorithm: str = KEY_ALGORITHM
    key_size: int = KEY_SIZE
    block_modes: Tuple[str, ...] = (BLOCK_MODE,)
    paddings: Tuple[str, ...] = (PADDING,)
    purposes: Tuple[str, ...] = (PURPOSE_ENCRYPT, PURPOSE_DECRYPT)
    randomized_encryption_required: bool = True
    user_authentication_required: bool = False

    def describe(self) -> str:
        """Stable text form, bound into the vault's wrapping AAD."""
        return "|".join(
            [
                self.algorithm,
                str(self.key_size),
                ",".join(self.block_modes),
                ",".join(self.paddings),
                ",".join(self.purposes),
                "rnd" if self.randomized_encryption_required else "fixed",
                "auth" if self.user_authentication_required else "noauth",
            ]
        )


KEY_SPEC = KeySpec()


class KeyHandle:
    """Reference to a key held by a key store.

    The material stays private to this package; repr and logs only ever
    show the alias and the algorithm.
    """

    __slots__ = ("alias", "spec", "_material")

    def __init__(self, alias: str, spec: KeySpec, material: bytes) -> None:
        if len(material) * 8 != spec.key_size:
            raise ValueError("Key material does not match key size")
        self.alias = alias
        self.spec = spec
        self._material = bytes(material)

    @property
    def algorithm(self) -> str:
        return self.spec.algorithm

    @property
    def key_size(self) -> int:
        return self.spec.key_size

    @property
    def purposes(self) -> Tuple[str, ...]:
        return self.spec.purposes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyHandle):
            return NotImplemented
        return self.alias == other.alias and hmac.compare_digest(self._material, other._material)

    def __hash__(self) -> int:
        return hash((self.alias, self.spec))

    def __repr__(self) -> str:
        return f"KeyHandle(alias={self.alias!r}, algorithm={self.algorithm}-{self.key_size})"


@dataclass(frozen=True)
class EncryptedField:
    """A stored field: Base64 ciphertext plus the Base64 IV it was made with."""

    ciphertext: str
    iv: str

    def __iter__(self) -> Iterator[str]:
        # Allows ``ct, iv = encrypt_field(...)``
        yield self.ciphertext
        yield self.iv


# ---------------------------------------------------------------------
# KDF / HKDF / AEAD helpers (vault key wrapping)
# ---------------------------------------------------------------------

def scrypt_kdf(password: str, salt: bytes, length: int = KEK_LEN) -> bytes:
    """Derive a key from a password using scrypt."""
    kdf = Scrypt(salt=salt, length=length, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(password.encode("utf-8"))

def hkdf_derive(key_material: bytes, info: bytes, length: int = 32) -> bytes:
    """Derive a subkey from key material using HKDF-SHA256."""
    hk = HKDF(algorithm=hashes.SHA256(), length=length, salt=None, info=info)
    return hk.derive(key_material)

def aesgcm_encrypt(key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> Tuple[bytes, bytes]:
    """Encrypt *plaintext* with AES-GCM; return (nonce, ciphertext)."""
    nonce = secrets.token_bytes(NONCE_LEN)
    ct = AESGCM(key).encrypt(nonce, plaintext, aad)
    return nonce, ct

def aesgcm_decrypt(key: bytes, nonce: bytes, ciphertext: bytes, aad: Optional[bytes] = None) -> bytes:
    """Decrypt AES-GCM *ciphertext* with *nonce*; return plaintext."""
    return AESGCM(key).decrypt(nonce, ciphertext, aad)


# ---------------------------------------------------------------------
# Base64 wire format
# ---------------------------------------------------------------------

def b64encode_text(data: bytes) -> str:
    """Standard alphabet, padded, no line breaks."""
    return base64.b64encode(data).decode("ascii")

def b64decode_text(text: str) -> bytes:
    """Strict Base64 decode that tolerates embedded whitespace/newlines."""
    compact = "".join(text.split())
    return base64.b64decode(compact, validate=True)


# ---------------------------------------------------------------------
# Field cipher
# ---------------------------------------------------------------------

def _check_key(key: KeyHandle, purpose: str) -> Optional[str]:
    """Return a reason string if *key* cannot be used for *purpose*."""
    if not isinstance(key, KeyHandle):
        return "not a key handle"
    if key.algorithm != KEY_ALGORITHM or key.key_size != KEY_SIZE:
        return f"unsupported key {key.algorithm}-{key.key_size}"
    if purpose not in key.purposes:
        return f"key not authorized for {purpose}"
    return None


def encrypt_field(plaintext: str, key: KeyHandle) -> EncryptedField:
    """Encrypt *plaintext* under *key* with a fresh random IV.

    Returns the ciphertext and IV as Base64 text. Two calls with the same
    plaintext and key never share an IV (up to the odds of a 128-bit
    collision), so equal plaintexts never produce equal ciphertexts.

    Raises:
        EncryptionFailed: the key is unusable or the cipher rejected the input.
    """
    reason = _check_key(key, PURPOSE_ENCRYPT)
    if reason:
        logger.error("field_encrypt_failed", reason=reason)
        raise EncryptionFailed(f"Encryption failed: {reason}")
    try:
        data = plaintext.encode("utf-8")
        padder = padding.PKCS7(BLOCK_SIZE).padder()
        padded = padder.update(data) + padder.finalize()

        iv = secrets.token_bytes(IV_LEN)
        encryptor = Cipher(algorithms.AES(key._material), modes.CBC(iv)).encryptor()
        ct = encryptor.update(padded) + encryptor.finalize()
    except (AttributeError, TypeError, ValueError, UnicodeError) as exc:
        logger.error("field_encrypt_failed", alias=key.alias, error=type(exc).__name__)
        raise EncryptionFailed("Encryption failed") from exc

    logger.debug("field_encrypted", alias=key.alias, ct_len=len(ct))
    return EncryptedField(ciphertext=b64encode_text(ct), iv=b64encode_text(iv))


def decrypt_field(ciphertext: str, iv: str, key: KeyHandle) -> str:
    """Decrypt a Base64 ciphertext/IV pair back to text.

    Padding validity and strict UTF-8 decoding are the only integrity
    signals; there is no MAC.

    Raises:
        DecryptionFailed: malformed Base64, bad IV length, wrong key,
            tampered ciphertext, or an unusable key.
    """
    reason = _check_key(key, PURPOSE_DECRYPT)
    if reason:
        logger.warning("field_decrypt_failed", reason=reason)
        raise DecryptionFailed(f"Decryption failed: {reason}")

    try:
        ct = b64decode_text(ciphertext)
        iv_bytes = b64decode_text(iv)
    except (binascii.Error, ValueError, TypeError, AttributeError) as exc:
        logger.warning("field_decrypt_failed", alias=key.alias, reason="bad base64")
        raise DecryptionFailed("Decryption failed: invalid Base64") from exc

    if len(iv_bytes) != IV_LEN:
        logger.warning("field_decrypt_failed", alias=key.alias, reason="bad iv length", iv_len=len(iv_bytes))
        raise DecryptionFailed(f"Decryption failed: IV must be {IV_LEN} bytes")
    if not ct or len(ct) % IV_LEN:
        logger.warning("field_decrypt_failed", alias=key.alias, reason="bad ciphertext length", ct_len=len(ct))
        raise DecryptionFailed("Decryption failed: ciphertext is not whole blocks")

    try:
        decryptor = Cipher(algorithms.AES(key._material), modes.CBC(iv_bytes)).decryptor()
        padded = decryptor.update(ct) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        text = data.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as exc:
        logger.warning("field_decrypt_failed", alias=key.alias, reason=type(exc).__name__)
        raise DecryptionFailed("Decryption failed: wrong key or corrupted data") from exc

    logger.debug("field_decrypted", alias=key.alias, ct_len=len(ct))
    return text
