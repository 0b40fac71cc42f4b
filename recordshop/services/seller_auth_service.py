# recordshop/services/seller_auth_service.py
"""
Polaczenie konta sprzedawcy z marketplace (OAuth1).

start() fetches a request token and the URL the seller must open to
authorise the shop. The request-token secret travels back to the callback
in a short-lived cookie. complete() trades the verified request token for
an access token, checks whose account it belongs to and stores it as the
seller credential used by ``SellerCredentialDelete``.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict

from requests import RequestException
from requests_oauthlib import OAuth1Session
from sqlalchemy.orm import Session

from recordshop.data.models.seller_credential import SellerCredentialModel
from recordshop.domain.errors import ConfigurationError, RetryExhaustedError, SellerAuthError
from recordshop.repos.seller_credential_repo import SellerCredentialRepo
from recordshop.services.discogs_client import DiscogsClient, seller_auth
from recordshop.utils.settings import (
    DISCOGS_AUTHORIZE_URL,
    DISCOGS_CONSUMER_KEY,
    DISCOGS_CONSUMER_SECRET,
    DISCOGS_USER_AGENT,
    HTTP_TIMEOUT_SECONDS,
)
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectStart:
    oauth_token: str
    oauth_token_secret: str
    authorize_url: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SellerAuthService:
    def __init__(
        self,
        db: Session,
        client: DiscogsClient,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        session_factory: Callable[..., OAuth1Session] = OAuth1Session,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.client = client
        self.credentials = SellerCredentialRepo(db)
        self.consumer_key = consumer_key if consumer_key is not None else DISCOGS_CONSUMER_KEY
        self.consumer_secret = consumer_secret if consumer_secret is not None else DISCOGS_CONSUMER_SECRET
        self.session_factory = session_factory
        self.clock = clock

    def _oauth(self, **kwargs) -> OAuth1Session:
        if not (self.consumer_key and self.consumer_secret):
            raise ConfigurationError("DISCOGS_CONSUMER_KEY and DISCOGS_CONSUMER_SECRET must be configured")
        oauth = self.session_factory(self.consumer_key, client_secret=self.consumer_secret, **kwargs)
        oauth.headers.update({"User-Agent": DISCOGS_USER_AGENT})
        return oauth

    def start(self, callback_url: str) -> ConnectStart:
        oauth = self._oauth(callback_uri=callback_url)
        try:
            token = oauth.fetch_request_token(f"{self.client.base_url}/oauth/request_token", timeout=HTTP_TIMEOUT_SECONDS)
        except (ValueError, RequestException) as e:
            logger.error(f"Request token refused: {e}")
            raise SellerAuthError(f"Could not obtain request token: {e}") from e

        logger.info("Seller connect started, waiting for authorisation")
        return ConnectStart(
            oauth_token=token["oauth_token"],
            oauth_token_secret=token["oauth_token_secret"],
            authorize_url=oauth.authorization_url(DISCOGS_AUTHORIZE_URL),
        )

    def complete(self, oauth_token: str, oauth_token_secret: str, oauth_verifier: str) -> SellerCredentialModel:
        oauth = self._oauth(resource_owner_key=oauth_token, resource_owner_secret=oauth_token_secret)
        try:
            token = oauth.fetch_access_token(
                f"{self.client.base_url}/oauth/access_token",
                verifier=oauth_verifier,
                timeout=HTTP_TIMEOUT_SECONDS,
            )
        except (ValueError, RequestException) as e:
            logger.error(f"Access token exchange failed: {e}")
            raise SellerAuthError(f"Could not obtain access token: {e}") from e

        access_token = token.get("oauth_token")
        access_token_secret = token.get("oauth_token_secret")
        if not access_token or not access_token_secret:
            raise SellerAuthError("Access token response is incomplete")

        auth = seller_auth(self.consumer_key, self.consumer_secret, access_token, access_token_secret)
        try:
            identity = self.client.get_identity(auth)
        except RetryExhaustedError as e:
            raise SellerAuthError(f"Could not verify seller identity: {e}") from e
        if not identity or not identity.get("username"):
            raise SellerAuthError("Seller token failed identity check")

        username = identity["username"]
        if self.client.username and username != self.client.username:
            # zapisujemy, ale strategia kasowania szuka konta z DISCOGS_USERNAME
            logger.warning(f"Connected account {username} differs from configured seller {self.client.username}")

        credential = self.credentials.upsert(username, access_token, access_token_secret, self.clock())
        logger.info(f"Seller credential stored for {username}")
        return credential

    def status(self) -> Dict[str, Any]:
        credential = self.credentials.latest()
        if credential is None:
            return {"connected": False}
        return {"connected": True, "username": credential.username, "last_verified": credential.last_verified}
