"""Pytest configuration and shared fixtures."""

import fnmatch
import json
import os
from unittest.mock import MagicMock

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import recordshop.data.models  # noqa: F401
from recordshop.data.database import Base
from recordshop.utils.retry import RateLimiter, RetryPolicy


class InMemoryCache:
    """Ten sam interfejs co CacheService, bez Redisa."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.available = True

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl):
        self.store[key] = value
        self.ttls[key] = ttl

    def clear(self, pattern="*"):
        keys = [k for k in self.store if fnmatch.fnmatchcase(k, pattern)]
        for k in keys:
            del self.store[k]
            self.ttls.pop(k, None)
        return len(keys)

    def get_json(self, key):
        raw = self.get(key)
        return json.loads(raw) if raw is not None else None

    def set_json(self, key, value, ttl):
        self.set(key, json.dumps(value, default=str), ttl)


def make_response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def http():
    """Sesja HTTP - testy ustawiaja http.request.side_effect."""
    return MagicMock()


@pytest.fixture
def discogs(http):
    from recordshop.services.discogs_client import DiscogsClient

    return DiscogsClient(
        base_url="https://api.test",
        token="test-token",
        username="shop",
        policy=RetryPolicy(max_retries=1, base_delay=0.0, max_delay=0.0),
        rate_limiter=RateLimiter(1000),
        session=http,
        sleep=lambda seconds: None,
    )


def sample_record(listing_id=1001, quantity_available=4, price="19.99", **overrides):
    record = {
        "id": listing_id,
        "title": f"Record {listing_id}",
        "price": price,
        "quantity_available": quantity_available,
        "condition": "Near Mint (NM or M-)",
        "weight": 230,
        "images": [f"https://img.test/{listing_id}.jpg"],
    }
    record.update(overrides)
    return record
