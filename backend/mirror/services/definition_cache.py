"""
Process-local definition cache.

Bounded least-recently-used map ``id -> SheetDefinition`` in front of the
durable store. Entries are copies the store can always rebuild, so the cache
may be cleared or evicted at any time.
"""

from collections import OrderedDict
from typing import Optional

from shared.models.mirror_template import SheetDefinition
from shared.utils.app_logger import get_logger

logger = get_logger(__name__)


class DefinitionCache:
    def __init__(self, capacity: int = 256):
        if capacity < 1:
            raise ValueError("cache capacity must be at least 1")
        self.capacity = capacity
        self._entries: "OrderedDict[str, SheetDefinition]" = OrderedDict()

    def get(self, definition_id: str) -> Optional[SheetDefinition]:
        definition = self._entries.get(definition_id)
        if definition is not None:
            self._entries.move_to_end(definition_id)
        return definition

    def put(self, definition: SheetDefinition) -> None:
        self._entries[definition.id] = definition
        self._entries.move_to_end(definition.id)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted definition {evicted} from cache")

    def invalidate(self, definition_id: str) -> None:
        self._entries.pop(definition_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, definition_id: str) -> bool:
        return definition_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
