# -*- coding: utf-8 -*-
"""Typed errors raised by the NousGuard encryption core."""
from __future__ import annotations


class NousGuardError(Exception):
    """Base class for all NousGuard errors."""


class KeyStoreError(NousGuardError):
    """The secure key store could not be opened, unlocked or written."""


class KeyUnavailable(NousGuardError):
    """The journal key could not be fetched or generated.

    Fatal to every encrypt/decrypt call until resolved; there is no
    fallback key.
    """


class EncryptionFailed(NousGuardError):
    """A field could not be encrypted; nothing was produced."""


class DecryptionFailed(NousGuardError):
    """A stored field could not be decrypted (bad encoding, wrong key, tampered data)."""


class InitializationFailed(NousGuardError):
    """Application bootstrap gave up after its bounded number of attempts."""
