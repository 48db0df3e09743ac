# Services
from threadmine.services.fetcher import FetchOrchestrator
from threadmine.services.pipeline import ClassificationPipeline
from threadmine.services.queries import (
    GitHubFetchOptions,
    SlackFetchOptions,
    build_github_query,
    build_slack_query,
)

__all__ = [
    "FetchOrchestrator",
    "ClassificationPipeline",
    "GitHubFetchOptions",
    "SlackFetchOptions",
    "build_github_query",
    "build_slack_query",
]
