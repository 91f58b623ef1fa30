# argocd_client.py

import logging
from typing import Optional
from urllib.parse import quote

import requests

from config import ArgoCDSettings

logger = logging.getLogger(__name__)


class ArgoCDClient:
    """
    Thin wrapper around the ArgoCD REST API. Only the sync trigger is used:

        POST /api/v1/applications/{name}/sync

    Returns the raw `requests.Response`; status classification is up to the caller.
    Network-level failures propagate as `requests.RequestException`.
    """

    def __init__(self, settings: ArgoCDSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if settings.token:
            self.session.headers.update({"Authorization": f"Bearer {settings.token}"})

    def sync_url(self, application: str) -> str:
        return f"{self.base_url}/api/v1/applications/{quote(application, safe='')}/sync"

    def trigger_sync(self, application: str, revision: Optional[str] = None) -> requests.Response:
        body = {
            "dryRun": self.settings.dry_run,
            "prune": self.settings.prune,
        }
        if revision and self.settings.pin_revision:
            body["revision"] = revision

        url = self.sync_url(application)
        logger.debug(f"POST {url} revision={revision or 'HEAD'}")
        return self.session.post(
            url,
            json=body,
            timeout=self.settings.timeout,
            verify=self.settings.verify_tls,
        )

    def close(self):
        self.session.close()
