# recordshop/services/record_service.py
import math
from datetime import datetime, timezone
from typing import Any, Dict, List

from requests import RequestException

from recordshop.domain.errors import ConfigurationError, RetryExhaustedError
from recordshop.services.cache_service import CacheService, inventory_key, record_key
from recordshop.services.discogs_client import DiscogsClient
from recordshop.utils.settings import (
    DEFAULT_RECORD_WEIGHT,
    INVENTORY_BUSTED_CACHE_TTL,
    INVENTORY_CACHE_TTL,
    RECORD_CACHE_TTL,
)
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

CATEGORIES = ("everything", "artists", "releases", "labels")
SORTS = ("date_desc", "date_asc", "price_asc", "price_desc", "title_asc", "title_desc")
MAX_INVENTORY_PAGES = 10
FOR_SALE = "For Sale"


def _first(value: Any, default: str) -> str:
    if isinstance(value, list):
        return value[0] if value else default
    return value or default


def _artist(release: Dict[str, Any]) -> str:
    value = release.get("artist")
    if isinstance(value, list):
        return ", ".join(value) if value else "Unknown Artist"
    return value or "Unknown Artist"


def map_listing(listing: Dict[str, Any]) -> Dict[str, Any]:
    """Listing z marketplace -> rekord sklepu."""
    release = listing.get("release") or {}
    price = listing.get("price") or {}

    genres: List[str] = []
    for source in (release.get("genre"), release.get("styles"), release.get("genres"), listing.get("genre"), listing.get("styles")):
        for genre in source or []:
            if genre and genre not in genres:
                genres.append(genre)

    images = [img.get("uri") for img in release.get("images") or [] if img.get("uri")]
    cover = images[0] if images else release.get("thumb") or "/placeholder.svg"

    try:
        amount = float(price.get("value") or 0)
    except (TypeError, ValueError):
        amount = 0.0

    return {
        "id": listing["id"],
        "title": release.get("title") or release.get("description") or "Untitled",
        "artist": _artist(release),
        "price": amount,
        "cover_image": cover,
        "images": images,
        "condition": listing.get("condition") or "Unknown",
        "status": listing.get("status") or "Unknown",
        "label": _first(release.get("label"), "Unknown Label"),
        "catalog_number": release.get("catalog_number") or "",
        "release_id": release.get("id"),
        "genres": genres,
        "quantity_available": int(listing.get("quantity") or 1),
        "weight": int(listing.get("weight") or DEFAULT_RECORD_WEIGHT),
        "date_added": listing.get("posted") or datetime.now(timezone.utc).isoformat(),
    }


def _matches(record: Dict[str, Any], term: str, category: str) -> bool:
    title = record["title"].lower()
    artist = record["artist"].lower()
    label = record["label"].lower()

    # "various" = kompilacje, dla artystow porownanie dokladne
    if term == "various" and category in ("everything", "artists"):
        return artist == "various"

    if category == "artists":
        return term in artist
    if category == "releases":
        return term in title
    if category == "labels":
        return term in label
    return term in title or term in artist or term in label


def _sort(records: List[Dict[str, Any]], sort: str | None) -> List[Dict[str, Any]]:
    if sort in ("date_desc", "date_asc"):
        return sorted(records, key=lambda r: r["date_added"], reverse=sort == "date_desc")
    if sort in ("price_asc", "price_desc"):
        return sorted(records, key=lambda r: r["price"], reverse=sort == "price_desc")
    if sort in ("title_asc", "title_desc"):
        return sorted(records, key=lambda r: r["title"].lower(), reverse=sort == "title_desc")
    return records


class RecordService:
    """Odczyt katalogu: wyszukiwanie w inventory i pojedynczy rekord (z cache)."""

    def __init__(self, client: DiscogsClient, cache: CacheService):
        self.client = client
        self.cache = cache

    def _fetch_all_listings(self) -> List[Dict[str, Any]]:
        listings: List[Dict[str, Any]] = []
        page = 1
        while page <= MAX_INVENTORY_PAGES:
            data = self.client.get_inventory(page=page)
            listings.extend(data.get("listings") or [])
            pages = (data.get("pagination") or {}).get("pages", 1)
            if page >= pages:
                break
            page += 1
        return listings

    def _inventory_records(self, cache_buster: str | None) -> List[Dict[str, Any]]:
        key = inventory_key({"username": self.client.username, "cb": cache_buster})
        cached = self.cache.get_json(key)
        if cached is not None:
            return cached

        records = []
        for listing in self._fetch_all_listings():
            try:
                records.append(map_listing(listing))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed listing {listing.get('id')}: {e}")

        ttl = INVENTORY_BUSTED_CACHE_TTL if cache_buster else INVENTORY_CACHE_TTL
        self.cache.set_json(key, records, ttl)
        return records

    def search_inventory(
        self,
        search: str | None = None,
        sort: str | None = None,
        page: int = 1,
        per_page: int = 20,
        category: str = "everything",
        cache_buster: str | None = None,
    ) -> Dict[str, Any]:
        try:
            records = self._inventory_records(cache_buster)
        except (RetryExhaustedError, RequestException, ConfigurationError, ValueError) as e:
            logger.error(f"Error fetching inventory: {e}")
            return {"records": [], "total_pages": 0, "page": page}

        if search:
            term = search.strip().lower()
            category = category if category in CATEGORIES else "everything"
            records = [r for r in records if _matches(r, term, category)]

        records = _sort(records, sort)

        start = (page - 1) * per_page
        return {
            "records": records[start:start + per_page],
            "total_pages": math.ceil(len(records) / per_page) if per_page else 0,
            "page": page,
        }

    def get_record(self, listing_id: Any, use_cache: bool = True) -> Dict[str, Any] | None:
        key = record_key(listing_id)
        if use_cache:
            cached = self.cache.get_json(key)
            if cached is not None:
                return cached

        listing = self.client.get_listing(listing_id)
        if listing is None:
            return None

        record = map_listing(listing)
        self.cache.set_json(key, record, RECORD_CACHE_TTL)
        return record
