"""Shared fixtures for the SyncHookX test suite."""

from __future__ import annotations

import pytest

from config import parse_settings
from helpers import SECRET


@pytest.fixture()
def raw_config() -> dict:
    return {
        "github_webhook_secret": SECRET,
        "debounce_seconds": 5,
        "settle_seconds": 0.2,
        "shutdown_grace_seconds": 1,
        "retry": {"max_attempts": 3, "base_delay": 0.01, "max_delay": 0.05, "jitter": 0},
        "argocd": {"base_url": "https://argocd.test", "token": "t0ken"},
        "repo_sync_map": {
            "org/app": [
                {"branch": "main", "application": "T"},
                {"branch": "develop", "application": "T-staging"},
            ],
            "org/platform": [
                {"branch": "main", "application": "ingress", "paths": ["charts/ingress"]},
                {"branch": "main", "application": "monitoring", "paths": ["charts/monitoring/"]},
            ],
        },
        "sync_api_key": "manual-key",
    }


@pytest.fixture()
def settings(raw_config):
    return parse_settings(raw_config)
