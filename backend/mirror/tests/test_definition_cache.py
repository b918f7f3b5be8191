import pytest

from shared.models.mirror_template import SheetDefinition

from mirror.services.definition_cache import DefinitionCache


def _definition(definition_id: str) -> SheetDefinition:
    return SheetDefinition(id=definition_id, client_key=f"{definition_id}-v1")


def test_least_recently_used_entry_is_evicted():
    cache = DefinitionCache(capacity=2)
    cache.put(_definition("a"))
    cache.put(_definition("b"))

    assert cache.get("a").id == "a"  # refreshes "a"
    cache.put(_definition("c"))

    assert "b" not in cache
    assert "a" in cache and "c" in cache
    assert len(cache) == 2


def test_put_replaces_existing_entry():
    cache = DefinitionCache(capacity=2)
    cache.put(_definition("a"))
    cache.put(SheetDefinition(id="a", client_key="renamed"))

    assert len(cache) == 1
    assert cache.get("a").client_key == "renamed"


def test_invalidate_and_clear():
    cache = DefinitionCache()
    cache.put(_definition("a"))
    cache.put(_definition("b"))

    cache.invalidate("a")
    cache.invalidate("missing")
    assert cache.get("a") is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        DefinitionCache(capacity=0)
