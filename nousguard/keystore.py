# -*- coding: utf-8 -*-
"""Secure key stores for NousGuard.

A key store owns key material and hands out :class:`KeyHandle` references.
The custodian only relies on the three operations of
:class:`SecureKeyStore`, so any backend with the same semantics can be
swapped in:

    MemoryKeyStore: process-local dict, for tests and throwaway sessions.
    VaultKeyStore:  SQLite file; key material sealed with AES-GCM under a
                    passphrase-derived wrap key (scrypt + HKDF), passphrase
                    checked with argon2.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional
import asyncio
import secrets

import aiosqlite
import structlog
from argon2.exceptions import InvalidHashError, VerificationError
from cryptography.exceptions import InvalidTag

from .crypto import (
    PH,
    SALT_LEN,
    HKDF_INFO_WRAP,
    KEY_ALGORITHM,
    KeyHandle,
    KeySpec,
    aesgcm_decrypt,
    aesgcm_encrypt,
    hkdf_derive,
    scrypt_kdf,
)
from .errors import KeyStoreError

logger = structlog.get_logger(__name__)

SUPPORTED_KEY_SIZES = (128, 192, 256)


def _check_spec(spec: KeySpec) -> None:
    if spec.algorithm != KEY_ALGORITHM or spec.key_size not in SUPPORTED_KEY_SIZES:
        raise KeyStoreError(f"Unsupported key spec {spec.algorithm}-{spec.key_size}")


class SecureKeyStore(ABC):
    """Capability interface the key custodian depends on."""

    @abstractmethod
    async def load(self) -> None:
        """Open/unlock the store. Safe to call more than once."""

    @abstractmethod
    async def get_key(self, alias: str) -> Optional[KeyHandle]:
        """Return the key stored under *alias*, or None."""

    @abstractmethod
    async def generate_and_store_key(self, alias: str, spec: KeySpec) -> KeyHandle:
        """Create a key under *alias* unless one exists; return the stored key."""


# ---------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------

class MemoryKeyStore(SecureKeyStore):
    """Keys live in a dict for the lifetime of the object."""

    def __init__(self) -> None:
        self._keys: Dict[str, KeyHandle] = {}
        self.loaded = False

    def _require_loaded(self) -> None:
        if not self.loaded:
            raise KeyStoreError("Key store not loaded")

    async def load(self) -> None:
        self.loaded = True

    async def get_key(self, alias: str) -> Optional[KeyHandle]:
        self._require_loaded()
        return self._keys.get(alias)

    async def generate_and_store_key(self, alias: str, spec: KeySpec) -> KeyHandle:
        self._require_loaded()
        _check_spec(spec)
        existing = self._keys.get(alias)
        if existing is not None:
            return existing
        handle = KeyHandle(alias, spec, secrets.token_bytes(spec.key_size // 8))
        return self._keys.setdefault(alias, handle)


# ---------------------------------------------------------------------
# SQLite vault
# ---------------------------------------------------------------------

VAULT_SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS vault (
    id              INTEGER PRIMARY KEY CHECK (id = 1),
    pwd_hash        TEXT NOT NULL,
    kek_salt        BLOB NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS keys (
    alias           TEXT PRIMARY KEY,
    algorithm       TEXT NOT NULL,
    key_size        INTEGER NOT NULL,
    block_modes     TEXT NOT NULL,
    paddings        TEXT NOT NULL,
    purposes        TEXT NOT NULL,
    randomized_iv   INTEGER NOT NULL,
    user_auth       INTEGER NOT NULL,

    -- AES-GCM sealed key material
    wrap_nonce      BLOB NOT NULL,
    wrapped         BLOB NOT NULL,

    created_at      TEXT NOT NULL
);
"""


def _wrap_aad(alias: str, spec: KeySpec) -> bytes:
    return f"{alias}|{spec.describe()}".encode("utf-8")


def _spec_from_row(row) -> KeySpec:
    return KeySpec(
        algorithm=row["algorithm"],
        key_size=int(row["key_size"]),
        block_modes=tuple(row["block_modes"].split(",")),
        paddings=tuple(row["paddings"].split(",")),
        purposes=tuple(row["purposes"].split(",")),
        randomized_encryption_required=bool(row["randomized_iv"]),
        user_authentication_required=bool(row["user_auth"]),
    )


class VaultKeyStore(SecureKeyStore):
    """Passphrase-sealed key vault in a SQLite file.

    The first ``load()`` creates the vault and binds it to *passphrase*;
    later loads must present the same passphrase. Raw key material is only
    ever written sealed, with the alias and key spec as associated data.
    """

    def __init__(self, path: str, passphrase: str) -> None:
        self.path = path
        self._passphrase = passphrase
        self._wrap_key: Optional[bytes] = None

    @property
    def loaded(self) -> bool:
        return self._wrap_key is not None

    def _require_loaded(self) -> bytes:
        if self._wrap_key is None:
            raise KeyStoreError("Key store not loaded")
        return self._wrap_key

    async def load(self) -> None:
        if self._wrap_key is not None:
            return
        if not self._passphrase:
            raise KeyStoreError("Key store passphrase required")

        try:
            async with aiosqlite.connect(self.path) as db:
                await db.executescript(VAULT_SCHEMA_SQL)
                db.row_factory = aiosqlite.Row
                row = await self._read_vault_row(db)
                if row is None:
                    pwd_hash = await asyncio.to_thread(PH.hash, self._passphrase)
                    # Concurrent initializers race on id=1; the loser re-reads the winner's row
                    await db.execute(
                        "INSERT OR IGNORE INTO vault (id, pwd_hash, kek_salt, created_at) VALUES (1, ?, ?, ?)",
                        (pwd_hash, secrets.token_bytes(SALT_LEN), datetime.now(timezone.utc).isoformat()),
                    )
                    await db.commit()
                    row = await self._read_vault_row(db)
                    logger.info("keystore_created", path=self.path)
        except (aiosqlite.Error, OSError) as exc:
            logger.error("keystore_unavailable", path=self.path, error=str(exc))
            raise KeyStoreError("Key store unavailable") from exc

        try:
            await asyncio.to_thread(PH.verify, row["pwd_hash"], self._passphrase)
        except (VerificationError, InvalidHashError) as exc:
            logger.warning("keystore_unlock_failed", path=self.path)
            raise KeyStoreError("Invalid key store passphrase") from exc

        kek = await asyncio.to_thread(scrypt_kdf, self._passphrase, row["kek_salt"])
        self._wrap_key = hkdf_derive(kek, HKDF_INFO_WRAP)
        logger.info("keystore_unlocked", path=self.path)

    @staticmethod
    async def _read_vault_row(db: aiosqlite.Connection):
        cur = await db.execute("SELECT pwd_hash, kek_salt FROM vault WHERE id = 1")
        row = await cur.fetchone()
        await cur.close()
        return row

    async def get_key(self, alias: str) -> Optional[KeyHandle]:
        wrap_key = self._require_loaded()
        try:
            async with aiosqlite.connect(self.path) as db:
                db.row_factory = aiosqlite.Row
                cur = await db.execute("SELECT * FROM keys WHERE alias = ?", (alias,))
                row = await cur.fetchone()
                await cur.close()
        except (aiosqlite.Error, OSError) as exc:
            raise KeyStoreError("Key store unavailable") from exc
        if row is None:
            return None

        spec = _spec_from_row(row)
        try:
            material = aesgcm_decrypt(wrap_key, row["wrap_nonce"], row["wrapped"], aad=_wrap_aad(alias, spec))
            return KeyHandle(alias, spec, material)
        except (InvalidTag, ValueError) as exc:
            logger.error("keystore_key_corrupt", alias=alias)
            raise KeyStoreError(f"Stored key {alias!r} could not be unsealed") from exc

    async def generate_and_store_key(self, alias: str, spec: KeySpec) -> KeyHandle:
        wrap_key = self._require_loaded()
        _check_spec(spec)

        material = secrets.token_bytes(spec.key_size // 8)
        nonce, wrapped = aesgcm_encrypt(wrap_key, material, aad=_wrap_aad(alias, spec))
        try:
            async with aiosqlite.connect(self.path) as db:
                cur = await db.execute(
                    """
                    INSERT OR IGNORE INTO keys (
                        alias, algorithm, key_size,
                        block_modes, paddings, purposes,
                        randomized_iv, user_auth,
                        wrap_nonce, wrapped, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        alias,
                        spec.algorithm,
                        spec.key_size,
                        ",".join(spec.block_modes),
                        ",".join(spec.paddings),
                        ",".join(spec.purposes),
                        int(spec.randomized_encryption_required),
                        int(spec.user_authentication_required),
                        nonce,
                        wrapped,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                await db.commit()
                created = cur.rowcount == 1
        except (aiosqlite.Error, OSError) as exc:
            logger.error("keystore_generate_failed", alias=alias, error=str(exc))
            raise KeyStoreError("Failed to generate or store key") from exc

        if created:
            logger.info("keystore_key_generated", alias=alias, algorithm=spec.algorithm, key_size=spec.key_size)

        # Whoever won the insert, the stored row is authoritative
        handle = await self.get_key(alias)
        if handle is None:
            raise KeyStoreError(f"Key {alias!r} missing after generation")
        return handle
