"""
Catalog Module - Produce Catalog & Search
============================================
Fetches every listing (with its farmer profile) once, then filters by text
and location in memory. Changing the query or the location never triggers
another fetch.
"""

import logging
from typing import Iterable, List, Optional

from config.settings import ALL_LOCATIONS
from common.exceptions import Farm2HomeError
from common.flash import NoticeBoard
from common.helpers import city_of
from modules.platform.client import PlatformClient

logger = logging.getLogger("farm2home.catalog")

CATALOG_JOIN = ("farmer",)


# ==========================================
# Pure filters
# ==========================================

def derive_locations(produces: Iterable[dict]) -> List[str]:
    """Sorted distinct cities (first comma segment of each location), blanks dropped."""
    return sorted({city_of(p.get("location")) for p in produces} - {""})


def matches(produce: dict, query: str = "", location: str = ALL_LOCATIONS) -> bool:
    query = (query or "").strip().lower()
    location = (location or "").strip().lower()

    if query:
        name = (produce.get("name") or "").lower()
        description = (produce.get("description") or "").lower()
        if query not in name and query not in description:
            return False

    if location and location != ALL_LOCATIONS:
        if location not in (produce.get("location") or "").lower():
            return False

    return True


def filter_produces(produces: Iterable[dict], query: str = "", location: str = ALL_LOCATIONS) -> List[dict]:
    return [p for p in produces if matches(p, query, location)]


# ==========================================
# Catalog state
# ==========================================

class ProduceCatalog:

    def __init__(self, client: PlatformClient, notices: NoticeBoard):
        self.client = client
        self.notices = notices
        self.produces: List[dict] = []
        self.filtered_produces: List[dict] = []
        self.available_locations: List[str] = []
        self.is_loading = False
        self._search_query = ""
        self._location_filter = ALL_LOCATIONS
        self._location_seeded = False

    # ------------------------------------------
    # Filters (setting either one re-filters)
    # ------------------------------------------

    @property
    def search_query(self) -> str:
        return self._search_query

    @search_query.setter
    def search_query(self, value: Optional[str]):
        self._search_query = value or ""
        self._refilter()

    @property
    def location_filter(self) -> str:
        return self._location_filter

    @location_filter.setter
    def location_filter(self, value: Optional[str]):
        self._location_filter = value or ALL_LOCATIONS
        self._refilter()

    def seed_location_filter(self, profile: Optional[dict]) -> bool:
        """
        One-time default: start on the viewer's own city when listings exist there.
        Returns True if the filter was seeded.
        """
        if self._location_seeded or not profile:
            return False
        self._location_seeded = True
        city = city_of(profile.get("location"))
        if city and city in self.available_locations:
            self.location_filter = city
            return True
        return False

    # ------------------------------------------
    # Loading
    # ------------------------------------------

    async def load(self):
        self.is_loading = True
        try:
            rows = await self.client.table("produce").select(
                join=CATALOG_JOIN, order_by="created_at", descending=True,
            )
        except Farm2HomeError as e:
            # Keep whatever was loaded before
            logger.error(f"Error fetching produce: {e.message}")
            self.notices.error("Error", "Failed to load produce listings")
            return
        finally:
            self.is_loading = False

        self._set_catalog(rows)
        logger.debug(f"Catalog loaded: {len(rows)} listings, {len(self.available_locations)} cities")

    async def refresh(self):
        await self.load()

    def remove(self, produce_id: int):
        """Drop a listing locally (after its owner deleted it)."""
        self._set_catalog([p for p in self.produces if p["id"] != produce_id])

    def get(self, produce_id: int) -> Optional[dict]:
        return next((p for p in self.produces if p["id"] == produce_id), None)

    def _set_catalog(self, rows: List[dict]):
        self.produces = list(rows)
        self.available_locations = derive_locations(self.produces)
        self._refilter()

    def _refilter(self):
        self.filtered_produces = filter_produces(self.produces, self._search_query, self._location_filter)
