# recordshop/services/inventory_service.py
"""
Uzgadnianie stanu marketplace po sprzedazy.

After a sale the remote listing must stop advertising the sold units.
Three strategies are tried in order and the first SUCCESS wins:

A. SellerCredentialDelete - OAuth1-signed delete with the stored seller token
B. TokenReadThenDecide    - read the live listing, then delete or decrement
C. DirectDelete           - unconditional delete with the API token

A strategy returns RETRYABLE to hand over to the next one and FATAL to stop
the chain. A 404 anywhere means somebody already removed the listing and
counts as success, which is also what makes two concurrent purchases of the
last copy safe.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Iterable, List, Sequence, Tuple

from requests_oauthlib import OAuth1
from sqlalchemy.orm import Session

from recordshop.domain.errors import InvalidExternalId
from recordshop.domain.ids import parse_external_id
from recordshop.repos.seller_credential_repo import SellerCredentialRepo
from recordshop.services.cache_service import CacheService, INVENTORY_PREFIX, record_key
from recordshop.services.discogs_client import DiscogsClient, seller_auth
from recordshop.utils.settings import (
    DISCOGS_CONSUMER_KEY,
    DISCOGS_CONSUMER_SECRET,
    DISCOGS_USERNAME,
    SELLER_TOKEN_MAX_AGE_HOURS,
)
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

# pola listingu ktore przepisujemy 1:1 przy zmianie ilosci
PRESERVED_FIELDS = ("sleeve_condition", "comments", "allow_offers", "external_id", "location", "weight", "format_quantity")


class StrategyOutcome(Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class StrategyResult:
    outcome: StrategyOutcome
    strategy: str
    detail: str = ""

    @classmethod
    def success(cls, strategy: str, detail: str = "") -> "StrategyResult":
        return cls(StrategyOutcome.SUCCESS, strategy, detail)

    @classmethod
    def retryable(cls, strategy: str, detail: str = "") -> "StrategyResult":
        return cls(StrategyOutcome.RETRYABLE, strategy, detail)

    @classmethod
    def fatal(cls, strategy: str, detail: str = "") -> "StrategyResult":
        return cls(StrategyOutcome.FATAL, strategy, detail)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SellerCredentialDelete:
    name = "seller_credential_delete"

    def __init__(
        self,
        client: DiscogsClient,
        credentials: SellerCredentialRepo,
        username: str | None = None,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        max_age: timedelta = timedelta(hours=SELLER_TOKEN_MAX_AGE_HOURS),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.credentials = credentials
        self.username = username if username is not None else DISCOGS_USERNAME
        self.consumer_key = consumer_key if consumer_key is not None else DISCOGS_CONSUMER_KEY
        self.consumer_secret = consumer_secret if consumer_secret is not None else DISCOGS_CONSUMER_SECRET
        self.max_age = max_age
        self.clock = clock

    def _auth(self, credential) -> OAuth1:
        return seller_auth(self.consumer_key, self.consumer_secret, credential.access_token, credential.access_token_secret)

    def _is_stale(self, credential) -> bool:
        last = credential.last_verified
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return last < self.clock() - self.max_age

    def run(self, listing_id: int, quantity: int) -> StrategyResult:
        if not (self.consumer_key and self.consumer_secret and self.username):
            return StrategyResult.retryable(self.name, "consumer credentials not configured")

        credential = self.credentials.get_by_username(self.username)
        if credential is None:
            return StrategyResult.retryable(self.name, f"no stored credential for {self.username}")

        auth = self._auth(credential)

        # token starszy niz 24h - sprawdz czy dalej wazny
        if self._is_stale(credential):
            if not self.client.verify_identity(auth):
                return StrategyResult.retryable(self.name, "seller token failed verification")
            self.credentials.mark_verified(credential, self.clock())

        if self.client.delete_listing_signed(listing_id, auth):
            return StrategyResult.success(self.name, "listing deleted with seller credential")
        return StrategyResult.retryable(self.name, "signed delete rejected")


class TokenReadThenDecide:
    name = "token_read_then_decide"

    def __init__(self, client: DiscogsClient):
        self.client = client

    @staticmethod
    def _update_body(listing: dict, remaining: int) -> dict:
        # wszystko ze swiezo odczytanego listingu, nigdy z lokalnego stanu
        body = {
            "release_id": listing["release"]["id"],
            "condition": listing["condition"],
            "price": listing["price"]["value"],
            "status": listing["status"],
            "quantity": remaining,
        }
        for field in PRESERVED_FIELDS:
            if listing.get(field) is not None:
                body[field] = listing[field]
        return body

    def run(self, listing_id: int, quantity: int) -> StrategyResult:
        listing = self.client.get_listing(listing_id)
        if listing is None:
            return StrategyResult.success(self.name, "listing already gone")

        current = int(listing.get("quantity") or 1)
        if current <= quantity:
            if self.client.delete_listing(listing_id):
                return StrategyResult.success(self.name, f"deleted (had {current}, sold {quantity})")
            return StrategyResult.retryable(self.name, "delete rejected")

        remaining = current - quantity
        if self.client.update_listing(listing_id, self._update_body(listing, remaining)):
            return StrategyResult.success(self.name, f"quantity {current} -> {remaining}")
        return StrategyResult.retryable(self.name, "update rejected")


class DirectDelete:
    name = "direct_delete"

    def __init__(self, client: DiscogsClient):
        self.client = client

    def run(self, listing_id: int, quantity: int) -> StrategyResult:
        if self.client.delete_listing(listing_id):
            return StrategyResult.success(self.name, "listing deleted")
        return StrategyResult.retryable(self.name, "delete rejected")


class InventoryReconciler:
    """
    Driver lancucha strategii. update_inventory nigdy nie rzuca wyjatku -
    zwraca bool, a wywolujacy (webhook) tylko loguje porazke.
    """

    def __init__(self, client: DiscogsClient, strategies: Sequence[Any], cache: CacheService | None = None):
        self.client = client
        self.strategies = list(strategies)
        self.cache = cache

    def _run_strategy(self, strategy, listing_id: int, quantity: int) -> StrategyResult:
        try:
            return strategy.run(listing_id, quantity)
        except Exception as e:
            logger.warning(f"Strategy {strategy.name} failed for listing {listing_id}: {e}")
            return StrategyResult.retryable(strategy.name, str(e))

    def _invalidate(self, listing_id: int) -> None:
        if self.cache is None:
            return
        self.cache.clear(f"{INVENTORY_PREFIX}:*")
        self.cache.clear(record_key(listing_id))

    def update_inventory(self, listing_id: Any, quantity_purchased: int) -> bool:
        if not self.client.configured:
            logger.error("Configuration error: DISCOGS_API_TOKEN is not set, inventory not updated")
            return False

        try:
            listing = parse_external_id(listing_id)
        except InvalidExternalId as e:
            logger.error(f"Cannot reconcile listing {listing_id!r}: {e}")
            return False

        if quantity_purchased <= 0:
            logger.error(f"Cannot reconcile listing {listing}: quantity {quantity_purchased} is not positive")
            return False

        for strategy in self.strategies:
            result = self._run_strategy(strategy, listing, quantity_purchased)

            if result.outcome is StrategyOutcome.SUCCESS:
                logger.info(f"Listing {listing} reconciled by {result.strategy}: {result.detail}")
                self._invalidate(listing)
                return True

            if result.outcome is StrategyOutcome.FATAL:
                logger.error(f"Listing {listing}: {result.strategy} stopped reconciliation: {result.detail}")
                return False

            logger.warning(f"Listing {listing}: {result.strategy} did not succeed ({result.detail}), trying next")

        logger.error(f"Failed to update marketplace inventory for listing {listing} (sold {quantity_purchased})")
        return False

    def reconcile_items(self, items: Iterable[Tuple[Any, int]]) -> Tuple[int, int]:
        succeeded = failed = 0
        for listing_id, quantity in items:
            if self.update_inventory(listing_id, quantity):
                succeeded += 1
            else:
                failed += 1
        return succeeded, failed


def build_reconciler(db: Session, client: DiscogsClient, cache: CacheService | None = None) -> InventoryReconciler:
    strategies: List[Any] = [
        SellerCredentialDelete(client, SellerCredentialRepo(db)),
        TokenReadThenDecide(client),
        DirectDelete(client),
    ]
    return InventoryReconciler(client, strategies, cache)
