# -*- coding: utf-8 -*-
"""SQLite schema and async data access for the NousGuard journal.

Rows hold Base64 ciphertext/IV text pairs verbatim; nothing here ever
sees plaintext or keys.
"""
from __future__ import annotations

from typing import List, Optional
import os

import aiosqlite

DB_PATH = os.environ.get("NOUSGUARD_DB", "nousguard_journal.sqlite3")


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS journal_entries (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,

    -- Encrypted title
    encrypted_title     TEXT NOT NULL,
    title_iv            TEXT NOT NULL,

    -- Encrypted content
    encrypted_content   TEXT NOT NULL,
    content_iv          TEXT NOT NULL,

    timestamp           TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_entries_timestamp ON journal_entries(timestamp);
"""


async def init_db(db_path: str) -> None:
    """Create tables if they don't exist."""
    async with aiosqlite.connect(db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def insert_entry_row(
    db_path: str,
    encrypted_title: str,
    title_iv: str,
    encrypted_content: str,
    content_iv: str,
    timestamp: str,
) -> int:
    """Insert an entry row and return new entry id."""
    async with aiosqlite.connect(db_path) as db:
        cur = await db.execute(
            """
            INSERT INTO journal_entries (
                encrypted_title, title_iv,
                encrypted_content, content_iv,
                timestamp
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (encrypted_title, title_iv, encrypted_content, content_iv, timestamp),
        )
        await db.commit()
        return cur.lastrowid


async def update_entry_row(
    db_path: str,
    entry_id: int,
    encrypted_title: str,
    title_iv: str,
    encrypted_content: str,
    content_iv: str,
    timestamp: str,
) -> int:
    """Replace the encrypted fields of an entry; return the number of rows changed."""
    async with aiosqlite.connect(db_path) as db:
        cur = await db.execute(
            """
            UPDATE journal_entries
               SET encrypted_title = ?,
                   title_iv = ?,
                   encrypted_content = ?,
                   content_iv = ?,
                   timestamp = ?
             WHERE id = ?
            """,
            (encrypted_title, title_iv, encrypted_content, content_iv, timestamp, entry_id),
        )
        await db.commit()
        return cur.rowcount


async def delete_entry_row(db_path: str, entry_id: int) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("DELETE FROM journal_entries WHERE id = ?", (entry_id,))
        await db.commit()


async def get_entry_row(db_path: str, entry_id: int) -> Optional[aiosqlite.Row]:
    """Return a single entry row or None."""
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        cur = await db.execute(
            "SELECT * FROM journal_entries WHERE id = ? LIMIT 1",
            (entry_id,),
        )
        row = await cur.fetchone()
        await cur.close()
        return row


async def list_entry_rows(db_path: str) -> List[aiosqlite.Row]:
    """Return all entry rows, newest first."""
    async with aiosqlite.connect(db_path) as db:
        db.row_factory = aiosqlite.Row
        cur = await db.execute(
            """
            SELECT id,
                   encrypted_title,
                   title_iv,
                   encrypted_content,
                   content_iv,
                   timestamp
              FROM journal_entries
             ORDER BY timestamp DESC, id DESC
            """
        )
        rows = await cur.fetchall()
        await cur.close()
        return list(rows)
