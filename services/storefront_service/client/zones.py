"""Read-only access to the zone -> sub-zone -> area logistics tree."""

from typing import Optional

from libs.common.logging import get_logger
from services.storefront_service.client.errors import REMOTE_ERRORS, Failure
from services.storefront_service.client.record_store import RecordStore
from services.storefront_service.schemas import LogisticsZone, ZonePath

logger = get_logger(__name__)

ZONES = "logistics_zones"


class ZoneHierarchyReader:
    def __init__(self, record_store: RecordStore):
        self._store = record_store

    async def children_of(self, parent_id: Optional[str]) -> list[LogisticsZone]:
        """Zones directly under ``parent_id`` (roots when ``None``), by name."""
        rows = await self._store.select(ZONES, where={"parent_id": parent_id}, order_by="name")
        return [LogisticsZone.model_validate(row) for row in rows]

    async def get(self, zone_id: str) -> Optional[LogisticsZone]:
        rows = await self._store.select(ZONES, where={"id": zone_id})
        return LogisticsZone.model_validate(rows[0]) if rows else None

    async def resolve(
        self,
        zone_id: Optional[str],
        sub_zone_id: Optional[str],
        area_id: Optional[str],
    ) -> Optional[ZonePath]:
        """Resolve an address's three ids to names.

        Returns ``None`` if any id is missing or the three do not form a
        root -> child -> grandchild chain.
        """
        if not (zone_id and sub_zone_id and area_id):
            return None

        rows = await self._store.select(
            ZONES, where_in={"id": {zone_id, sub_zone_id, area_id}}
        )
        by_id = {row["id"]: LogisticsZone.model_validate(row) for row in rows}
        zone, sub_zone, area = by_id.get(zone_id), by_id.get(sub_zone_id), by_id.get(area_id)
        if zone is None or sub_zone is None or area is None:
            return None
        if zone.parent_id is not None or sub_zone.parent_id != zone.id or area.parent_id != sub_zone.id:
            logger.warning(
                "Zone chain %s/%s/%s is inconsistent", zone_id, sub_zone_id, area_id
            )
            return None
        return ZonePath(zone=zone.name, sub_zone=sub_zone.name, area=area.name)


class ZoneNavigator:
    """Breadcrumb traversal over the zone tree.

    ``path`` is the chain of zones opened so far; ``children`` lists what is
    under the last one (or the roots when the path is empty). A failed query
    leaves both unchanged and reports the failure.
    """

    def __init__(self, reader: ZoneHierarchyReader):
        self._reader = reader
        self.path: list[LogisticsZone] = []
        self.children: list[LogisticsZone] = []

    async def _show(self, path: list[LogisticsZone]) -> Optional[Failure]:
        parent_id = path[-1].id if path else None
        try:
            children = await self._reader.children_of(parent_id)
        except REMOTE_ERRORS:
            logger.exception("Failed to load zones under %s", parent_id)
            return Failure.network("Could not load zones.")
        self.path = path
        self.children = children
        return None

    async def open_root(self) -> Optional[Failure]:
        return await self._show([])

    async def descend(self, zone: LogisticsZone) -> Optional[Failure]:
        return await self._show([*self.path, zone])

    async def navigate_to(self, index: int) -> Optional[Failure]:
        """Truncate the breadcrumb to ``index + 1`` entries and re-query."""
        if index < 0 or index >= len(self.path):
            raise IndexError(f"Breadcrumb index {index} out of range")
        return await self._show(self.path[: index + 1])

    async def navigate_home(self) -> Optional[Failure]:
        return await self._show([])
