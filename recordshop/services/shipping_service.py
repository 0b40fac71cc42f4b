# recordshop/services/shipping_service.py
import math
from concurrent.futures import Future
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Tuple

from recordshop.services.cache_service import CacheService, shipping_key
from recordshop.utils.batching import BatchProcessor
from recordshop.utils.settings import DEFAULT_RECORD_WEIGHT, SHIPPING_CACHE_TTL
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

SMARTPOST = "ITELLA_SMARTPOST"
LOCAL_PICKUP = "LOCAL_PICKUP"
METHODS = (SMARTPOST, LOCAL_PICKUP)

ESTONIA_RATES = {SMARTPOST: Decimal("2.99"), LOCAL_PICKUP: Decimal("0.00")}

# (max waga w gramach, koszt)
EUROPE_RATES = [
    (2000, Decimal("15.00")),
    (3000, Decimal("18.00")),
    (5000, Decimal("24.00")),
    (math.inf, Decimal("29.00")),
]
REST_OF_WORLD_RATES = [
    (3000, Decimal("25.00")),
    (5000, Decimal("30.00")),
    (math.inf, Decimal("55.00")),
]

EUROPEAN_COUNTRIES = {
    "austria", "belgium", "bulgaria", "croatia", "cyprus", "czech republic",
    "denmark", "finland", "france", "germany", "greece", "hungary", "ireland",
    "italy", "latvia", "lithuania", "luxembourg", "malta", "netherlands",
    "norway", "poland", "portugal", "romania", "slovakia", "slovenia", "spain",
    "sweden", "switzerland", "united kingdom",
    "at", "be", "bg", "hr", "cy", "cz", "dk", "fi", "fr", "de", "gr", "hu",
    "ie", "it", "lv", "lt", "lu", "mt", "nl", "no", "pl", "pt", "ro", "sk",
    "si", "es", "se", "ch", "gb", "uk",
}
ESTONIA = {"estonia", "eesti", "ee"}

QuoteKey = Tuple[str, int, str]


def _tier(rates, weight: int) -> Decimal:
    for max_weight, cost in rates:
        if weight <= max_weight:
            return cost
    return rates[-1][1]


def calculate_shipping_cost(weight: int | None, country: str, method: str = SMARTPOST) -> Decimal:
    if not weight or weight <= 0:
        weight = DEFAULT_RECORD_WEIGHT

    country_norm = country.strip().lower()
    if country_norm in ESTONIA:
        return ESTONIA_RATES.get(method, ESTONIA_RATES[SMARTPOST])
    if country_norm in EUROPEAN_COUNTRIES:
        return _tier(EUROPE_RATES, weight)
    return _tier(REST_OF_WORLD_RATES, weight)


class ShippingService:
    """
    Wyceny wysylki przez BatchProcessor: N zapytan -> ceil(N / max_batch_size)
    wywolan batcha. Batch najpierw czyta cache (shipping:*), brakujace liczy i zapisuje.
    """

    def __init__(self, cache: CacheService, max_batch_size: int = 10, max_wait_time: float = 0.05):
        self.cache = cache
        self.batch = BatchProcessor(self._quote_batch, max_batch_size=max_batch_size, max_wait_time=max_wait_time)

    def _quote_batch(self, keys: List[QuoteKey]) -> List[Decimal]:
        quotes = []
        for country, weight, method in keys:
            key = shipping_key(country, weight, method)
            cached = self.cache.get(key)
            if cached is not None:
                quotes.append(Decimal(cached))
                continue
            cost = calculate_shipping_cost(weight, country, method)
            self.cache.set(key, str(cost), SHIPPING_CACHE_TTL)
            quotes.append(cost)
        return quotes

    def quote(self, weight: int | None, country: str, method: str = SMARTPOST) -> Future:
        if method not in METHODS:
            raise ValueError(f"Unknown shipping method: {method}")
        return self.batch.add((country, int(weight or DEFAULT_RECORD_WEIGHT), method))

    def quote_many(self, weights: Iterable[int | None], country: str, method: str = SMARTPOST) -> List[Decimal]:
        futures = [self.quote(weight, country, method) for weight in weights]
        self.batch.flush()
        return [f.result() for f in futures]

    def cart_shipping(self, cart: Dict[str, Any], country: str, method: str = SMARTPOST) -> Dict[str, Any]:
        total_weight = sum((item["weight"] or DEFAULT_RECORD_WEIGHT) * item["quantity"] for item in cart["items"])
        if not cart["items"]:
            return {"country": country, "method": method, "weight": 0, "cost": Decimal("0.00")}

        cost = self.quote(total_weight, country, method)
        self.batch.flush()
        return {"country": country, "method": method, "weight": total_weight, "cost": cost.result()}
