from __future__ import annotations

import aiosqlite
import pytest

from shared.exceptions.mirror import StoreFailure
from shared.models.mirror_template import FieldDef, Fingerprint, PageSize, SheetDefinition

from mirror.services.definition_store import DefinitionStore


def _definition(definition_id: str = "t1", labels=("Client Name",), grid_hash: str | None = None) -> SheetDefinition:
    fields = [
        FieldDef(key=label.lower().replace(" ", "_"), label=label, bbox=[0, row, 1, row])
        for row, label in enumerate(labels)
    ]
    fingerprint = None
    if grid_hash:
        fingerprint = Fingerprint(page_size=PageSize(w=1000, h=1400), grid_hash=grid_hash, label_set=list(labels))
    return SheetDefinition(id=definition_id, client_key="Acme-v1", fields=fields, fingerprint=fingerprint)


@pytest.mark.asyncio
async def test_upsert_then_get_round_trips(tmp_path) -> None:
    store = DefinitionStore(str(tmp_path / "defs.db"))
    definition = _definition(grid_hash="v1:abc")

    await store.upsert(definition)
    loaded = await store.get("t1")

    assert loaded == definition
    assert loaded.fingerprint.grid_hash == "v1:abc"


@pytest.mark.asyncio
async def test_upsert_replaces_and_keeps_created_at(tmp_path) -> None:
    store = DefinitionStore(str(tmp_path / "defs.db"))

    await store.upsert(_definition(labels=("Client Name", "Date")))
    created, _ = await store.get_timestamps("t1")
    await store.upsert(_definition(labels=("Site",)))

    loaded = await store.get("t1")
    assert [f.label for f in loaded.fields] == ["Site"]

    created_again, updated = await store.get_timestamps("t1")
    assert created_again == created
    assert updated >= created


@pytest.mark.asyncio
async def test_missing_definition_returns_none(tmp_path) -> None:
    store = DefinitionStore(str(tmp_path / "defs.db"))

    assert await store.get("nope") is None
    assert await store.get_timestamps("nope") is None


@pytest.mark.asyncio
async def test_list_fingerprints_skips_definitions_without_one(tmp_path) -> None:
    store = DefinitionStore(str(tmp_path / "defs.db"))
    await store.upsert(_definition("b", grid_hash="v1:bbb"))
    await store.upsert(_definition("a", grid_hash="v1:aaa"))
    await store.upsert(_definition("c"))

    listed = await store.list_fingerprints()

    assert [(i, key, fp.grid_hash) for i, key, fp in listed] == [
        ("a", "Acme-v1", "v1:aaa"),
        ("b", "Acme-v1", "v1:bbb"),
    ]


@pytest.mark.asyncio
async def test_delete(tmp_path) -> None:
    store = DefinitionStore(str(tmp_path / "defs.db"))
    await store.upsert(_definition())

    assert await store.delete("t1") is True
    assert await store.delete("t1") is False
    assert await store.get("t1") is None


@pytest.mark.asyncio
async def test_data_survives_a_new_store_instance(tmp_path) -> None:
    path = str(tmp_path / "nested" / "defs.db")
    await DefinitionStore(path).upsert(_definition())

    reopened = DefinitionStore(path)

    assert (await reopened.get("t1")).client_key == "Acme-v1"


@pytest.mark.asyncio
async def test_corrupt_row_raises_store_failure(tmp_path) -> None:
    store = DefinitionStore(str(tmp_path / "defs.db"))
    await store.initialize()
    async with aiosqlite.connect(store.db_path) as conn:
        await conn.execute(
            "INSERT INTO mirror_templates VALUES (?, ?, ?, ?, ?, ?)",
            ("bad", "k", None, "{not json", "2024-01-01", "2024-01-01"),
        )
        await conn.commit()

    with pytest.raises(StoreFailure) as exc:
        await store.get("bad")

    assert exc.value.code == "STORE_FAILURE"


@pytest.mark.asyncio
async def test_unreachable_database_raises_store_failure(tmp_path) -> None:
    # A directory in place of the database file cannot be opened
    blocked = tmp_path / "blocked.db"
    blocked.mkdir()
    store = DefinitionStore(str(blocked))

    with pytest.raises(StoreFailure):
        await store.upsert(_definition())


def test_database_path_from_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("MIRROR_DEFINITIONS_DB_PATH", str(tmp_path / "env.db"))

    store = DefinitionStore()

    assert store.db_path == str((tmp_path / "env.db").resolve())
