from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Tuple


class MalformedPayload(ValueError):
    """The delivery body could not be read as a webhook payload."""


class WebhookEvent(BaseModel):
    """
    An inbound delivery as received from the Git host. Never mutated after parsing.
    Fields other than the raw body may be missing; the classifier decides what that means.
    """
    model_config = ConfigDict(frozen=True)

    event_type: str = ""
    delivery_id: str = ""
    repository: str = ""
    ref: str = ""
    head_sha: str = ""
    deleted: bool = False
    pusher: str = ""
    changed_paths: Tuple[str, ...] = ()
    body: bytes = Field(default=b"", repr=False)
    signature: Optional[str] = Field(default=None, repr=False)

    @property
    def branch(self) -> str:
        if self.ref.startswith("refs/heads/"):
            return self.ref[len("refs/heads/"):]
        return ""


def _changed_paths(payload: Dict[str, Any]) -> Tuple[str, ...]:
    paths: List[str] = []
    for commit in payload.get("commits") or []:
        if not isinstance(commit, dict):
            continue
        for key in ("added", "modified", "removed"):
            for path in commit.get(key) or []:
                if isinstance(path, str) and path not in paths:
                    paths.append(path)
    return tuple(paths)


def event_from_payload(
        payload: Any,
        body: bytes,
        event_type: Optional[str],
        delivery_id: Optional[str],
        signature: Optional[str],
) -> WebhookEvent:
    """
    Build a WebhookEvent from a decoded GitHub-style push payload.

    Raises:
        MalformedPayload: if the decoded payload is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise MalformedPayload("Webhook payload must be a JSON object.")

    repository = payload.get("repository") or {}
    if not isinstance(repository, dict):
        repository = {}
    head_commit = payload.get("head_commit") or {}
    if not isinstance(head_commit, dict):
        head_commit = {}
    pusher = payload.get("pusher") or {}
    if not isinstance(pusher, dict):
        pusher = {}

    # GitHub sends ping deliveries without the event header on some proxies.
    if not event_type and "zen" in payload:
        event_type = "ping"

    return WebhookEvent(
        event_type=(event_type or "").lower(),
        delivery_id=delivery_id or str(payload.get("delivery", "") or ""),
        repository=str(repository.get("full_name") or ""),
        ref=str(payload.get("ref") or ""),
        head_sha=str(payload.get("after") or head_commit.get("id") or ""),
        deleted=bool(payload.get("deleted", False)),
        pusher=str(pusher.get("name") or ""),
        changed_paths=_changed_paths(payload),
        body=body,
        signature=signature,
    )
