"""Fakes and payload builders shared by the tests."""

from __future__ import annotations

import hashlib
import hmac
import json
import threading
import time


SECRET = "test-secret"


class FakeResponse:
    def __init__(self, status_code: int, text: str = ""):
        self.status_code = status_code
        self.text = text or f"status {status_code}"


class FakeArgoCD:
    """Stands in for ArgoCDClient. Plays back scripted status codes (or exceptions), then 200s."""

    def __init__(self, statuses=None, release: threading.Event | None = None):
        self.script = list(statuses or [])
        self.release = release
        self.calls: list[tuple[str, str]] = []
        self.closed = False
        self._lock = threading.Lock()

    def trigger_sync(self, application, revision=None):
        with self._lock:
            self.calls.append((application, revision))
            outcome = self.script.pop(0) if self.script else 200
        if self.release is not None:
            self.release.wait(10)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)

    def close(self):
        self.closed = True


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify_sync_event(self, application, repository, ref, status, details=""):
        self.events.append((application, status, details))


def sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def push_payload(repo="org/app", ref="refs/heads/main", sha="abc123", paths=None) -> dict:
    return {
        "ref": ref,
        "after": sha,
        "deleted": False,
        "repository": {"full_name": repo},
        "pusher": {"name": "octocat"},
        "head_commit": {"id": sha},
        "commits": [{"id": sha, "added": [], "modified": list(paths or []), "removed": []}],
    }


def push_headers(body: bytes, delivery="d-1", event="push", secret: str = SECRET) -> dict:
    return {
        "Content-Type": "application/json",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": delivery,
        "X-Hub-Signature-256": sign(body, secret),
    }


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode()


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


