"""Journal repository tests: encrypted writes, decrypted reads, per-record isolation."""
import aiosqlite
import pytest

from nousguard import db
from nousguard.errors import DecryptionFailed, EncryptionFailed
from nousguard.logic import (
    UNDECRYPTABLE_CONTENT,
    UNDECRYPTABLE_TITLE,
    JournalRepository,
)


@pytest.fixture
def repo(db_path, key):
    return JournalRepository(db_path, key)


async def _raw_rows(db_path):
    async with aiosqlite.connect(db_path) as conn:
        conn.row_factory = aiosqlite.Row
        cur = await conn.execute("SELECT * FROM journal_entries ORDER BY id")
        rows = await cur.fetchall()
        await cur.close()
        return rows


@pytest.mark.asyncio
async def test_add_and_get_entry(db_path, repo):
    await db.init_db(db_path)
    eid = await repo.add_entry("Monday", "Felt anxious before the meeting.")
    entry = await repo.get_entry(eid)
    assert entry.id == eid
    assert entry.title == "Monday"
    assert entry.content == "Felt anxious before the meeting."
    assert entry.timestamp.tzinfo is not None
    assert not entry.decrypt_failed


@pytest.mark.asyncio
async def test_rows_hold_only_ciphertext(db_path, repo):
    await db.init_db(db_path)
    await repo.add_entry("Secret title", "Secret content")
    (row,) = await _raw_rows(db_path)
    stored = " ".join(str(row[k]) for k in row.keys())
    assert "Secret" not in stored
    assert row["title_iv"] != row["content_iv"]


@pytest.mark.asyncio
async def test_get_missing_entry_returns_none(db_path, repo):
    await db.init_db(db_path)
    assert await repo.get_entry(9999) is None


@pytest.mark.asyncio
async def test_list_entries_newest_first(db_path, repo):
    await db.init_db(db_path)
    first = await repo.add_entry("one", "first")
    second = await repo.add_entry("two", "second")
    entries = await repo.list_entries()
    assert [e.id for e in entries] == [second, first]
    assert [e.title for e in entries] == ["two", "one"]


@pytest.mark.asyncio
async def test_update_entry_reencrypts_with_fresh_ivs(db_path, repo):
    await db.init_db(db_path)
    eid = await repo.add_entry("draft", "same body")
    (before,) = await _raw_rows(db_path)

    await repo.update_entry(eid, "final", "same body")
    (after,) = await _raw_rows(db_path)
    assert after["title_iv"] != before["title_iv"]
    assert after["content_iv"] != before["content_iv"]
    assert after["encrypted_content"] != before["encrypted_content"]
    assert after["timestamp"] >= before["timestamp"]

    entry = await repo.get_entry(eid)
    assert (entry.title, entry.content) == ("final", "same body")


@pytest.mark.asyncio
async def test_update_missing_entry_raises(db_path, repo):
    await db.init_db(db_path)
    with pytest.raises(ValueError):
        await repo.update_entry(42, "t", "c")


@pytest.mark.asyncio
async def test_delete_entry(db_path, repo):
    await db.init_db(db_path)
    eid = await repo.add_entry("gone", "soon")
    keep = await repo.add_entry("stay", "here")
    await repo.delete_entry(eid)
    assert await repo.get_entry(eid) is None
    assert [e.id for e in await repo.list_entries()] == [keep]


@pytest.mark.asyncio
async def test_corrupted_record_does_not_block_listing(db_path, repo):
    await db.init_db(db_path)
    good = await repo.add_entry("fine", "readable")
    bad = await repo.add_entry("broken", "unreadable")
    async with aiosqlite.connect(db_path) as conn:
        await conn.execute(
            "UPDATE journal_entries SET encrypted_title = ? WHERE id = ?",
            ("@@not-base64@@", bad),
        )
        await conn.commit()

    entries = {e.id: e for e in await repo.list_entries()}
    assert entries[good].title == "fine"
    assert not entries[good].decrypt_failed
    assert entries[bad].decrypt_failed
    assert entries[bad].title == UNDECRYPTABLE_TITLE
    assert entries[bad].content == UNDECRYPTABLE_CONTENT

    with pytest.raises(DecryptionFailed):
        await repo.get_entry(bad)


@pytest.mark.asyncio
async def test_wrong_key_yields_placeholders(db_path, repo, other_key):
    await db.init_db(db_path)
    await repo.add_entry("Hello, World! entry title", "Body text that spans more than one block.")
    stranger = JournalRepository(db_path, other_key)
    (entry,) = await stranger.list_entries()
    assert entry.decrypt_failed


@pytest.mark.asyncio
async def test_encryption_failure_writes_nothing(db_path, repo):
    await db.init_db(db_path)
    with pytest.raises(EncryptionFailed):
        await repo.add_entry("ok title", "bad \ud800 content")
    assert await _raw_rows(db_path) == []


@pytest.mark.asyncio
async def test_multibyte_and_empty_fields(db_path, repo):
    await db.init_db(db_path)
    eid = await repo.add_entry("", "日記 – 🌙")
    entry = await repo.get_entry(eid)
    assert entry.title == ""
    assert entry.content == "日記 – 🌙"
