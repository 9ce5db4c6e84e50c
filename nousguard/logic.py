# -*- coding: utf-8 -*-
"""Journal logic that composes the DB and crypto layers.

This module provides the public API used by the UI. It does not contain any
Textual UI code. Fields are encrypted before anything touches the DB, and
decrypted on the way back out.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
import asyncio

import structlog

from . import db
from .crypto import KeyHandle, decrypt_field, encrypt_field
from .errors import DecryptionFailed

logger = structlog.get_logger(__name__)

UNDECRYPTABLE_TITLE = "Decryption Failed!"
UNDECRYPTABLE_CONTENT = "Error: Cannot decrypt content."


@dataclass(frozen=True)
class JournalEntry:
    """A decrypted journal entry (or a placeholder if decryption failed)."""

    id: int
    title: str
    content: str
    timestamp: datetime
    decrypt_failed: bool = False


def _now() -> datetime:
    return datetime.now(timezone.utc)

def _parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class JournalRepository:
    """Encrypted journal storage bound to one database and one key.

    Construct it only once the key exists; there is no uninitialized state.
    """

    def __init__(self, db_path: str, key: KeyHandle) -> None:
        self.db_path = db_path
        self._key = key

    async def _encrypt(self, text: str):
        return await asyncio.to_thread(encrypt_field, text, self._key)

    async def _decrypt(self, ciphertext: str, iv: str) -> str:
        return await asyncio.to_thread(decrypt_field, ciphertext, iv, self._key)

    async def _decrypt_row(self, row) -> JournalEntry:
        title = await self._decrypt(row["encrypted_title"], row["title_iv"])
        content = await self._decrypt(row["encrypted_content"], row["content_iv"])
        return JournalEntry(
            id=row["id"],
            title=title,
            content=content,
            timestamp=_parse_timestamp(row["timestamp"]),
        )

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------

    async def add_entry(self, title: str, content: str) -> int:
        """Encrypt and insert a new entry; return its id.

        Both fields are encrypted before the insert, so an encryption failure
        writes nothing.
        """
        t_ct, t_iv = await self._encrypt(title)
        c_ct, c_iv = await self._encrypt(content)
        eid = await db.insert_entry_row(self.db_path, t_ct, t_iv, c_ct, c_iv, _now().isoformat())
        logger.info("entry_inserted", entry_id=eid)
        return eid

    async def update_entry(self, entry_id: int, new_title: str, new_content: str) -> None:
        # re-encrypt both fields with fresh IVs
        t_ct, t_iv = await self._encrypt(new_title)
        c_ct, c_iv = await self._encrypt(new_content)
        changed = await db.update_entry_row(
            self.db_path, entry_id, t_ct, t_iv, c_ct, c_iv, _now().isoformat()
        )
        if not changed:
            raise ValueError("Entry not found")
        logger.info("entry_updated", entry_id=entry_id)

    async def delete_entry(self, entry_id: int) -> None:
        await db.delete_entry_row(self.db_path, entry_id)
        logger.info("entry_deleted", entry_id=entry_id)

    # -----------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------

    async def get_entry(self, entry_id: int) -> Optional[JournalEntry]:
        """Return the decrypted entry, or None if no such id.

        Raises:
            DecryptionFailed: the stored fields could not be decrypted.
        """
        row = await db.get_entry_row(self.db_path, entry_id)
        if row is None:
            return None
        try:
            return await self._decrypt_row(row)
        except DecryptionFailed:
            logger.error("entry_decrypt_failed", entry_id=entry_id)
            raise

    async def list_entries(self) -> List[JournalEntry]:
        """Return all entries, newest first.

        A row that cannot be decrypted is replaced by a placeholder entry
        flagged ``decrypt_failed`` so the rest of the listing still loads.
        """
        rows = await db.list_entry_rows(self.db_path)
        out: List[JournalEntry] = []
        for r in rows:
            try:
                out.append(await self._decrypt_row(r))
            except DecryptionFailed:
                logger.error("entry_decrypt_failed", entry_id=r["id"])
                out.append(
                    JournalEntry(
                        id=r["id"],
                        title=UNDECRYPTABLE_TITLE,
                        content=UNDECRYPTABLE_CONTENT,
                        timestamp=_parse_timestamp(r["timestamp"]),
                        decrypt_failed=True,
                    )
                )
        logger.debug("entries_listed", count=len(out))
        return out
