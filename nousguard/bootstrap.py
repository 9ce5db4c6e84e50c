# -*- coding: utf-8 -*-
"""Application bootstrap.

Startup runs in two phases: ``start()`` schedules key + database setup in
the background, and consumers ``await services()`` once to get a fully
built :class:`AppServices`. Setup is retried a bounded number of times and
then lands in a terminal ``failed`` state.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional
import asyncio

import aiosqlite
import structlog

from . import db
from .crypto import KeyHandle
from .custodian import KEY_ALIAS, KeyCustodian
from .errors import InitializationFailed, KeyUnavailable
from .keystore import SecureKeyStore, VaultKeyStore
from .logic import JournalRepository

logger = structlog.get_logger(__name__)

RETRYABLE = (KeyUnavailable, aiosqlite.Error, OSError)


class InitState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class AppServices:
    """Everything the UI needs, only ever built fully initialized."""

    config: Dict[str, object]
    custodian: KeyCustodian
    key: KeyHandle
    repository: JournalRepository


def open_vault(config: Dict[str, object], passphrase: str) -> VaultKeyStore:
    """Build the on-disk key store named by *config*."""
    return VaultKeyStore(str(config["keystore_path"]), passphrase)


class AppInitializer:
    """Runs startup once and publishes the result through a readiness future."""

    def __init__(self, config: Dict[str, object], store: SecureKeyStore) -> None:
        self.config = config
        self.custodian = KeyCustodian(store, alias=str(config.get("key_alias") or KEY_ALIAS))
        self.max_attempts = max(1, int(config.get("init_max_attempts", 3)))
        self.retry_delay = max(0.0, float(config.get("init_retry_delay", 0.5)))
        self.state = InitState.PENDING
        self.attempts = 0
        self._task: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None

    def start(self) -> asyncio.Task:
        """Schedule initialization (idempotent); must be called inside a running loop."""
        if self._task is None:
            self._ready = asyncio.get_running_loop().create_future()
            self._task = asyncio.create_task(self._run())
        return self._task

    async def services(self) -> AppServices:
        """Wait for initialization; raise InitializationFailed if it gave up."""
        self.start()
        return await asyncio.shield(self._ready)

    async def _initialize(self) -> AppServices:
        key = await self.custodian.get_or_create_key()
        db_path = str(self.config["db_path"])
        await db.init_db(db_path)
        logger.info("database_ready", db_path=db_path)
        return AppServices(
            config=self.config,
            custodian=self.custodian,
            key=key,
            repository=JournalRepository(db_path, key),
        )

    async def _run(self) -> None:
        self.state = InitState.RUNNING
        last_exc: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            self.attempts = attempt
            try:
                services = await self._initialize()
            except RETRYABLE as exc:
                last_exc = exc
                logger.warning(
                    "init_attempt_failed",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    error=type(exc).__name__,
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
                continue
            except Exception as exc:
                last_exc = exc
                logger.error("init_aborted", attempt=attempt, error=type(exc).__name__)
                break
            self.state = InitState.READY
            logger.info("init_ready", attempts=attempt)
            self._ready.set_result(services)
            return

        self.state = InitState.FAILED
        logger.error("init_failed", attempts=self.attempts)
        err = InitializationFailed(f"Initialization failed after {self.attempts} attempt(s)")
        err.__cause__ = last_exc
        self._ready.set_exception(err)
