"""Key store tests: memory store semantics and the passphrase-sealed vault."""
import aiosqlite
import pytest

from nousguard.crypto import KEY_SPEC, KeySpec, decrypt_field, encrypt_field
from nousguard.errors import KeyStoreError
from nousguard.keystore import MemoryKeyStore, VaultKeyStore

ALIAS = "nousguard_encryption_key"


@pytest.fixture
def vault_path(tmp_path):
    return str(tmp_path / "keys.sqlite3")


# ---------------------------------------------------------------------------
# MemoryKeyStore
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_memory_store_requires_load():
    store = MemoryKeyStore()
    with pytest.raises(KeyStoreError):
        await store.get_key(ALIAS)


@pytest.mark.asyncio
async def test_memory_store_create_if_absent():
    store = MemoryKeyStore()
    await store.load()
    assert await store.get_key(ALIAS) is None
    first = await store.generate_and_store_key(ALIAS, KEY_SPEC)
    second = await store.generate_and_store_key(ALIAS, KEY_SPEC)
    assert first == second
    assert await store.get_key(ALIAS) == first
    assert first.key_size == 256 and first.algorithm == "AES"


@pytest.mark.asyncio
async def test_memory_store_rejects_unsupported_spec():
    store = MemoryKeyStore()
    await store.load()
    with pytest.raises(KeyStoreError):
        await store.generate_and_store_key(ALIAS, KeySpec(algorithm="DES"))


# ---------------------------------------------------------------------------
# VaultKeyStore
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_vault_key_survives_restart(vault_path):
    store = VaultKeyStore(vault_path, "correct horse")
    await store.load()
    key = await store.generate_and_store_key(ALIAS, KEY_SPEC)
    ct, iv = encrypt_field("persisted across restarts", key)

    reopened = VaultKeyStore(vault_path, "correct horse")
    await reopened.load()
    again = await reopened.get_key(ALIAS)
    assert again == key
    assert again.spec == KEY_SPEC
    assert decrypt_field(ct, iv, again) == "persisted across restarts"


@pytest.mark.asyncio
async def test_vault_never_stores_raw_material(vault_path):
    store = VaultKeyStore(vault_path, "correct horse")
    await store.load()
    key = await store.generate_and_store_key(ALIAS, KEY_SPEC)
    async with aiosqlite.connect(vault_path) as db:
        cur = await db.execute("SELECT wrapped FROM keys WHERE alias = ?", (ALIAS,))
        (wrapped,) = await cur.fetchone()
        await cur.close()
    assert key._material not in wrapped


@pytest.mark.asyncio
async def test_vault_generate_is_create_if_absent(vault_path):
    store = VaultKeyStore(vault_path, "pw")
    await store.load()
    first = await store.generate_and_store_key(ALIAS, KEY_SPEC)
    second = await store.generate_and_store_key(ALIAS, KEY_SPEC)
    assert first == second
    async with aiosqlite.connect(vault_path) as db:
        cur = await db.execute("SELECT COUNT(*) FROM keys")
        (count,) = await cur.fetchone()
        await cur.close()
    assert count == 1


@pytest.mark.asyncio
async def test_vault_wrong_passphrase(vault_path):
    store = VaultKeyStore(vault_path, "right")
    await store.load()
    await store.generate_and_store_key(ALIAS, KEY_SPEC)

    intruder = VaultKeyStore(vault_path, "wrong")
    with pytest.raises(KeyStoreError):
        await intruder.load()
    assert not intruder.loaded


@pytest.mark.asyncio
async def test_vault_empty_passphrase(vault_path):
    with pytest.raises(KeyStoreError):
        await VaultKeyStore(vault_path, "").load()


@pytest.mark.asyncio
async def test_vault_requires_load(vault_path):
    store = VaultKeyStore(vault_path, "pw")
    with pytest.raises(KeyStoreError):
        await store.get_key(ALIAS)
    with pytest.raises(KeyStoreError):
        await store.generate_and_store_key(ALIAS, KEY_SPEC)


@pytest.mark.asyncio
async def test_vault_unavailable_path(tmp_path):
    store = VaultKeyStore(str(tmp_path / "missing" / "dir" / "keys.sqlite3"), "pw")
    with pytest.raises(KeyStoreError):
        await store.load()


@pytest.mark.asyncio
async def test_vault_detects_tampered_key_row(vault_path):
    store = VaultKeyStore(vault_path, "pw")
    await store.load()
    await store.generate_and_store_key(ALIAS, KEY_SPEC)
    async with aiosqlite.connect(vault_path) as db:
        # spec columns are bound into the seal
        await db.execute("UPDATE keys SET purposes = 'encrypt' WHERE alias = ?", (ALIAS,))
        await db.commit()
    with pytest.raises(KeyStoreError):
        await store.get_key(ALIAS)


@pytest.mark.asyncio
async def test_vault_load_is_idempotent(vault_path):
    store = VaultKeyStore(vault_path, "pw")
    await store.load()
    await store.load()
    assert store.loaded
