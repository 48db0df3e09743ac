"""
FastAPI Dependency Injection

Shared store, limiter and orchestrator for the API routes. Tests replace
these through app.dependency_overrides.
"""

from functools import lru_cache

from fastapi import Depends

from threadmine.config import get_settings
from threadmine.integrations.github.client import GitHubClient
from threadmine.integrations.slack.client import SlackClient
from threadmine.ratelimit.limiter import RateLimiter
from threadmine.services.fetcher import FetchOrchestrator
from threadmine.storage.cache import SnapshotCache
from threadmine.storage.sqlite_store import MessageStore


@lru_cache
def get_store() -> MessageStore:
    """One store per process; the SQLite file also holds rate limit windows."""
    return MessageStore(get_settings().db_path)


def get_limiter(store: MessageStore = Depends(get_store)) -> RateLimiter:
    return RateLimiter(store)


def get_orchestrator(
    store: MessageStore = Depends(get_store),
    limiter: RateLimiter = Depends(get_limiter),
) -> FetchOrchestrator:
    settings = get_settings()
    cache = SnapshotCache(settings.cache_dir, settings.cache_max_age_seconds)
    return FetchOrchestrator(
        store=store,
        limiter=limiter,
        slack_client=SlackClient(settings),
        github_client=GitHubClient(settings, cache=cache),
        settings=settings,
    )
