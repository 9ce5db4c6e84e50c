# -*- coding: utf-8 -*-
"""Key custodian: get-or-create lifecycle of the journal key."""
from __future__ import annotations

import asyncio

import structlog

from .crypto import KEY_SPEC, KeyHandle, KeySpec
from .errors import KeyStoreError, KeyUnavailable
from .keystore import SecureKeyStore

logger = structlog.get_logger(__name__)

KEY_ALIAS = "nousguard_encryption_key"


class KeyCustodian:
    """Hands out the single journal key, generating it on first use.

    Concurrent callers are serialized so that first-time callers converge
    on one generated key. Any store failure surfaces as
    :class:`KeyUnavailable`; there is no fallback key.
    """

    def __init__(self, store: SecureKeyStore, alias: str = KEY_ALIAS, spec: KeySpec = KEY_SPEC) -> None:
        self.store = store
        self.alias = alias
        self.spec = spec
        self._lock = asyncio.Lock()
        self._loaded = False

    async def get_or_create_key(self) -> KeyHandle:
        async with self._lock:
            try:
                if not self._loaded:
                    await self.store.load()
                    self._loaded = True

                key = await self.store.get_key(self.alias)
                if key is not None:
                    self._check(key)
                    logger.debug("key_retrieved", alias=self.alias)
                    return key

                key = await self.store.generate_and_store_key(self.alias, self.spec)
                self._check(key)
                logger.info("key_generated", alias=self.alias, algorithm=key.algorithm, key_size=key.key_size)
                return key
            except KeyStoreError as exc:
                logger.error("key_unavailable", alias=self.alias, error=str(exc))
                raise KeyUnavailable(f"Encryption key {self.alias!r} unavailable") from exc

    def _check(self, key: KeyHandle) -> None:
        if key.algorithm != self.spec.algorithm or key.key_size != self.spec.key_size:
            raise KeyStoreError(
                f"Stored key is {key.algorithm}-{key.key_size}, expected {self.spec.algorithm}-{self.spec.key_size}"
            )
