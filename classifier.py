# classifier.py decides whether a verified delivery should trigger any application sync.

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config import SyncRoute
from models.github_webhook import WebhookEvent
from models.sync_request import SyncRequest

logger = logging.getLogger(__name__)

PUSH_EVENT = "push"


@dataclass(frozen=True)
class Classification:
    requests: List[SyncRequest] = field(default_factory=list)
    skip_reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return bool(self.requests)


def _skip(reason: str) -> Classification:
    return Classification(skip_reason=reason)


def _touches(route: SyncRoute, changed_paths) -> bool:
    # No file list in the payload means we cannot rule the route out.
    if not route.paths or not changed_paths:
        return True
    prefixes = [p.strip("/") for p in route.paths]
    for path in changed_paths:
        for prefix in prefixes:
            if not prefix or path == prefix or path.startswith(prefix + "/"):
                return True
    return False


def classify(event: WebhookEvent, repo_sync_map: Dict[str, List[SyncRoute]], now: Optional[float] = None) -> Classification:
    """
    Map a verified delivery onto SyncRequests for every matching route.

    Anything that is not a push to a tracked branch of a tracked repository is a skip,
    including event types we have never seen before.
    """
    if event.event_type != PUSH_EVENT:
        return _skip(f"Event type '{event.event_type or 'unknown'}' does not trigger a sync.")

    if not event.repository or not event.ref:
        return _skip("Push payload is missing repository or ref.")

    routes = repo_sync_map.get(event.repository)
    if not routes:
        return _skip(f"Repository '{event.repository}' is not tracked.")

    if event.deleted:
        return _skip(f"Ref '{event.ref}' was deleted.")

    branch = event.branch
    branch_routes = [r for r in routes if branch and r.branch == branch]
    if not branch_routes:
        return _skip(f"Ref '{event.ref}' is not tracked for repository '{event.repository}'.")

    matched = [r for r in branch_routes if _touches(r, event.changed_paths)]
    if not matched:
        return _skip(f"No changed path matches the routes for '{event.repository}' on '{branch}'.")

    extra = {} if now is None else {"created_at": now}
    requests = []
    for route in matched:
        if any(r.application == route.application for r in requests):
            continue
        requests.append(SyncRequest(
            application=route.application,
            repository=event.repository,
            ref=event.ref,
            revision=event.head_sha,
            delivery_id=event.delivery_id,
            **extra,
        ))
    logger.debug(f"Delivery {event.delivery_id} maps to {[r.application for r in requests]}.")
    return Classification(requests=requests)


def requests_for_branch(
        repository: str,
        branch: str,
        repo_sync_map: Dict[str, List[SyncRoute]],
        revision: str = "",
        delivery_id: str = "",
) -> List[SyncRequest]:
    """Every route for (repository, branch), ignoring path filters. Used by manual syncs."""
    requests: List[SyncRequest] = []
    for route in repo_sync_map.get(repository, []):
        if route.branch != branch or any(r.application == route.application for r in requests):
            continue
        requests.append(SyncRequest(
            application=route.application,
            repository=repository,
            ref=f"refs/heads/{branch}",
            revision=revision,
            delivery_id=delivery_id,
        ))
    return requests
