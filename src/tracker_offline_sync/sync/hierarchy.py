"""Org unit hierarchy: level-ordered ingestion and path-prefix lookups."""

import logging
from enum import Enum
from typing import Any, Callable, Iterable

from tracker_offline_sync.exceptions import TransformError
from tracker_offline_sync.models.metadata import OrgUnit, OrgUnitWithChildren
from tracker_offline_sync.store.local import AnyOf, Equals, LocalStore, StartsWith
from tracker_offline_sync.store.schema import ORG_UNIT
from tracker_offline_sync.sync.transform import TransformContext, transform_org_unit

logger = logging.getLogger(__name__)


class MergeMode(str, Enum):
    """How ingested units combine with units already stored.

    OVERWRITE replaces stored units wholesale. MERGE_FLAGS keeps
    ``within_user_hierarchy`` set if either the stored or the incoming copy has
    it, so the "all units" and "user hierarchy" pulls can run in any order.
    """

    OVERWRITE = "overwrite"
    MERGE_FLAGS = "merge_flags"


def _sort_key(unit: OrgUnit) -> tuple[int, str]:
    return unit.level, unit.path


class HierarchyBuilder:
    """Builds and queries the org unit tree over the flat ``orgUnit`` table.

    The builder holds no state: parent/children views are derived from paths on
    every call.

    Example:
        builder = HierarchyBuilder(store)
        builder.ingest(raw_units)
        builder.ingest(user_units, mode=MergeMode.MERGE_FLAGS, within_user_hierarchy=True)
        tree = builder.get_unit_with_children("ImspTQPwCqd")
    """

    def __init__(self, store: LocalStore):
        self.store = store

    def ingest(
        self,
        raw_units: Iterable[dict[str, Any]],
        mode: MergeMode = MergeMode.OVERWRITE,
        within_user_hierarchy: bool = False,
        on_invalid: Callable[[TransformError], None] | None = None,
    ) -> int:
        """Validate raw org units and persist them level by level, lowest first.

        Args:
            raw_units: Remote org unit records
            mode: OVERWRITE or MERGE_FLAGS
            within_user_hierarchy: Flag every unit of this batch as within the
                user's hierarchy
            on_invalid: Receives each malformed unit's error; those units are
                skipped. Without it the first malformed unit aborts the batch.

        Returns:
            Number of units written

        Raises:
            TransformError: If a unit is malformed and ``on_invalid`` is not
                given (nothing is written)
            StoreWriteError: If the store rejects a write (nothing is written)
        """
        context = TransformContext()
        units: dict[str, OrgUnit] = {}
        for raw in raw_units:
            try:
                transformed = transform_org_unit(raw, context, within_user_hierarchy)
            except TransformError as e:
                if on_invalid is None:
                    raise
                logger.warning(f"Skipping org unit: {e}")
                on_invalid(e)
                continue
            for unit in transformed:
                previous = units.get(unit.id)
                if previous is not None and previous.within_user_hierarchy:
                    unit = unit.model_copy(update={"within_user_hierarchy": True})
                units[unit.id] = unit

        by_level: dict[int, list[OrgUnit]] = {}
        for unit in units.values():
            by_level.setdefault(unit.level, []).append(unit)

        written = 0
        with self.store.transaction():
            for level in sorted(by_level):
                batch = by_level[level]
                if mode == MergeMode.MERGE_FLAGS:
                    batch = self._merge_flags(batch)
                written += self.store.bulk_put(ORG_UNIT, batch)
                logger.debug(f"Stored {len(batch)} org units at level {level}")

        logger.info(f"Ingested {written} org units across {len(by_level)} levels ({mode.value})")
        return written

    def _merge_flags(self, batch: list[OrgUnit]) -> list[OrgUnit]:
        stored = {
            unit.id: unit
            for unit in self.store.query(ORG_UNIT, "id", AnyOf([u.id for u in batch]))
        }
        merged = []
        for unit in batch:
            existing = stored.get(unit.id)
            if existing is not None and existing.within_user_hierarchy and not unit.within_user_hierarchy:
                unit = unit.model_copy(update={"within_user_hierarchy": True})
            merged.append(unit)
        return merged

    def get_unit(self, unit_id: str) -> OrgUnit | None:
        return self.store.get(ORG_UNIT, unit_id)

    def get_children(self, unit: OrgUnit) -> list[OrgUnit]:
        """All descendants of ``unit`` at any depth.

        Matches every unit whose path starts with ``unit.path + "/"``; the unit
        itself and units on other branches never match.
        """
        prefix = unit.path.rstrip("/") + "/"
        descendants = self.store.query(ORG_UNIT, "path", StartsWith(prefix))
        return sorted(descendants, key=_sort_key)

    def get_direct_children(self, unit: OrgUnit) -> list[OrgUnit]:
        return [child for child in self.get_children(unit) if child.level == unit.level + 1]

    def get_unit_with_children(self, unit_id: str) -> OrgUnitWithChildren | None:
        """The unit record with all its descendants merged in.

        Args:
            unit_id: Org unit id

        Returns:
            OrgUnitWithChildren, or None if the unit is not stored
        """
        unit = self.get_unit(unit_id)
        if unit is None:
            return None
        return OrgUnitWithChildren(**unit.model_dump(), children=self.get_children(unit))

    def get_user_hierarchy(self) -> list[OrgUnit]:
        """Units flagged as within the current user's hierarchy."""
        units = self.store.query(ORG_UNIT, "within_user_hierarchy", Equals(True))
        return sorted(units, key=_sort_key)

    def find_orphans(self) -> list[OrgUnit]:
        """Stored units whose path names a parent that is not stored."""
        units = self.store.all(ORG_UNIT)
        ids = {unit.id for unit in units}
        orphans = []
        for unit in units:
            segments = [s for s in unit.path.split("/") if s]
            if len(segments) > 1 and segments[-2] not in ids:
                orphans.append(unit)
        return sorted(orphans, key=_sort_key)

    def get_roots(self) -> list[OrgUnit]:
        """Units at the lowest stored level."""
        units = self.store.all(ORG_UNIT)
        if not units:
            return []
        top = min(unit.level for unit in units)
        return sorted((u for u in units if u.level == top), key=_sort_key)
