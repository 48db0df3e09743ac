from pathlib import Path
from functools import lru_cache
from typing import Any, Dict, Optional
import logging

import yaml
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".threadmine"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "ThreadMine"
    debug: bool = False

    # Slack (user token: search.messages is not available to bot tokens)
    slack_token: str = ""

    # GitHub
    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    github_graphql_url: str = "https://api.github.com/graphql"

    # Storage
    db_path: str = str(DEFAULT_HOME / "threadmine.db")
    cache_dir: str = str(DEFAULT_HOME / "raw")
    graph_dir: str = str(DEFAULT_HOME / "graph" / "structure")
    config_file: str = str(DEFAULT_HOME / "config.yaml")

    # Network
    request_timeout_seconds: int = 30
    cache_max_age_seconds: int = 3600

    # Rate limits: (window seconds, published max, self-imposed safety limit)
    slack_search_window: int = 60
    slack_search_max: int = 20
    slack_search_safety: int = 10
    slack_replies_window: int = 60
    slack_replies_max: int = 50
    slack_replies_safety: int = 25
    github_search_window: int = 60
    github_search_max: int = 30
    github_search_safety: int = 15
    github_core_window: int = 3600
    github_core_max: int = 5000
    github_core_safety: int = 2500

    model_config = ConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def load_fetch_defaults(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load fetch defaults from the YAML config file.

    The file is optional. Keys are grouped per source, e.g.:

        fetch:
          slack:
            channel: support
            since: 7d
          github:
            repo: org/repo

    Returns:
        Mapping of source name to its defaults (empty when the file is absent)
    """
    config_path = Path(path or get_settings().config_file).expanduser()
    if not config_path.exists():
        return {}

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid config file {config_path}: {e}") from e

    fetch_section = data.get("fetch") or {}
    if not isinstance(fetch_section, dict):
        raise ValueError(f"Invalid config file {config_path}: 'fetch' must be a mapping")

    logger.debug(f"Loaded fetch defaults from {config_path}")
    return {
        source: values
        for source, values in fetch_section.items()
        if isinstance(values, dict)
    }
