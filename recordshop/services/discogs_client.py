# recordshop/services/discogs_client.py
from typing import Any, Dict

import requests
from requests_oauthlib import OAuth1

from recordshop.domain.errors import ConfigurationError
from recordshop.utils.retry import RateLimiter, RetryPolicy, fetch_with_retry
from recordshop.utils.settings import (
    DISCOGS_API_TOKEN,
    DISCOGS_API_URL,
    DISCOGS_USER_AGENT,
    DISCOGS_USERNAME,
)
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

# 404 na DELETE = listing juz usuniety, traktujemy jak sukces
DELETE_OK_STATUSES = frozenset({200, 204, 404})


def seller_auth(consumer_key: str, consumer_secret: str, access_token: str, access_token_secret: str) -> OAuth1:
    """Podpis OAuth1 requestow w imieniu sprzedawcy."""
    return OAuth1(
        consumer_key,
        client_secret=consumer_secret,
        resource_owner_key=access_token,
        resource_owner_secret=access_token_secret,
        signature_method="HMAC-SHA1",
    )


class DiscogsClient:
    """
    Klient REST marketplace (token auth).
    Kazde wywolanie idzie przez fetch_with_retry - 429/5xx obsluzone nizej.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        username: str | None = None,
        policy: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        session: requests.Session | None = None,
        sleep=None,
    ):
        self.base_url = (base_url or DISCOGS_API_URL).rstrip("/")
        self.token = token if token is not None else DISCOGS_API_TOKEN
        self.username = username if username is not None else DISCOGS_USERNAME
        self.policy = policy
        self.rate_limiter = rate_limiter
        self.session = session
        self.sleep = sleep

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise ConfigurationError("DISCOGS_API_TOKEN is not configured")
        return {
            "Authorization": f"Discogs token={self.token}",
            "User-Agent": DISCOGS_USER_AGENT,
        }

    def _request(self, method: str, path: str, auth=None, **kwargs):
        url = f"{self.base_url}{path}"
        logger.info(f"DiscogsClient {method} {url}")
        extra = {}
        if auth is None:
            headers = self._headers()
        else:
            # podpisany request (OAuth1) - bez tokena w naglowku
            headers = {"User-Agent": DISCOGS_USER_AGENT}
            extra["auth"] = auth
        if self.sleep is not None:
            extra["sleep"] = self.sleep
        return fetch_with_retry(
            method,
            url,
            policy=self.policy,
            rate_limiter=self.rate_limiter,
            session=self.session,
            headers=headers,
            **extra,
            **kwargs,
        )

    def get_listing(self, listing_id: Any) -> Dict[str, Any] | None:
        """Aktualny stan listingu albo None gdy zniknal (404)."""
        resp = self._request("GET", f"/marketplace/listings/{listing_id}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    def delete_listing(self, listing_id: Any) -> bool:
        resp = self._request("DELETE", f"/marketplace/listings/{listing_id}")
        if resp.status_code in DELETE_OK_STATUSES:
            return True
        logger.warning(f"Delete of listing {listing_id} returned {resp.status_code}")
        return False

    def update_listing(self, listing_id: Any, body: Dict[str, Any]) -> bool:
        resp = self._request("POST", f"/marketplace/listings/{listing_id}", json=body)
        if 200 <= resp.status_code < 300:
            return True
        logger.warning(f"Update of listing {listing_id} returned {resp.status_code}")
        return False

    def get_inventory(self, page: int = 1, per_page: int = 100, sort: str = "listed", sort_order: str = "desc") -> Dict[str, Any]:
        if not self.username:
            raise ConfigurationError("DISCOGS_USERNAME is not configured")
        resp = self._request(
            "GET",
            f"/users/{self.username}/inventory",
            params={"page": page, "per_page": per_page, "sort": sort, "sort_order": sort_order},
        )
        resp.raise_for_status()
        return resp.json()

    def delete_listing_signed(self, listing_id: Any, auth) -> bool:
        resp = self._request("DELETE", f"/marketplace/listings/{listing_id}", auth=auth)
        if resp.status_code in DELETE_OK_STATUSES:
            return True
        logger.warning(f"Signed delete of listing {listing_id} returned {resp.status_code}")
        return False

    def get_identity(self, auth) -> Dict[str, Any] | None:
        """Konto, do ktorego nalezy podpisany token (None gdy token odrzucony)."""
        resp = self._request("GET", "/oauth/identity", auth=auth)
        if not 200 <= resp.status_code < 300:
            return None
        return resp.json()

    def verify_identity(self, auth) -> bool:
        return self.get_identity(auth) is not None
