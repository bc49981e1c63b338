"""
Metadata Change Detector

Compares freshly fetched change numbers against the persisted ones and
returns the ids whose change number differs. Nothing is written back: the
new change numbers are recorded later, when the full product info arrives.
"""
from enum import Enum
from typing import Iterable, Set, Tuple

from ...utils.logger import get_logger

logger = get_logger('change_detector')


class EntityKind(Enum):
    APP = 'app'
    PACKAGE = 'package'

    @property
    def label(self) -> str:
        return 'App' if self is EntityKind.APP else 'Package'


def detect_changes(kind: EntityKind, fresh_pairs: Iterable[Tuple[int, int]], store) -> Set[int]:
    """Find the entities of ``kind`` whose change number moved.

    The persisted change numbers are all read from the store before
    any comparison. Missing entries count as change number 0.

    Args:
        kind: Entity kind of every pair
        fresh_pairs: (entity_id, change_number) as reported by the catalog
        store: Catalog store providing ``get_change_numbers``

    Returns:
        Set of changed entity ids
    """
    fresh = dict(fresh_pairs)
    if not fresh:
        return set()

    current = store.get_change_numbers(kind, list(fresh.keys()))

    changed = set()
    for entity_id, change_number in fresh.items():
        current_change_number = current.get(entity_id, 0)

        if current_change_number != change_number:
            logger.info(f"[ChangeDetector] {kind.label} {entity_id} - Change: {current_change_number} -> {change_number}")
            changed.add(entity_id)

    return changed
