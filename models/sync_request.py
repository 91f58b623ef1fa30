import time
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import List, Optional


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


class DispatchStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PERMANENTLY_FAILED = "permanently_failed"
    # Shutdown interrupted the dispatch before a 2xx was observed; safe to re-trigger.
    UNKNOWN = "unknown"


class JourneyOutcome(str, Enum):
    REJECTED = "rejected"
    SKIPPED = "skipped"
    SUPERSEDED = "superseded"
    SUCCEEDED = "succeeded"
    PERMANENTLY_FAILED = "permanently_failed"
    UNKNOWN = "unknown"


class SyncRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    application: str
    repository: str = ""
    ref: str = ""
    revision: str = ""
    delivery_id: str = ""
    created_at: float = Field(default_factory=time.time)


class DispatchAttempt(BaseModel):
    application: str
    delivery_id: str
    attempt: int
    outcome: AttemptOutcome
    status_code: Optional[int] = None
    latency: float = 0.0
    error: Optional[str] = None


class DispatchResult(BaseModel):
    request: SyncRequest
    status: DispatchStatus
    attempts: List[DispatchAttempt] = Field(default_factory=list)
    reason: str = ""

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def last_error(self) -> Optional[str]:
        return self.attempts[-1].error if self.attempts else None


class EventRecord(BaseModel):
    delivery_id: str
    outcome: JourneyOutcome
    application: Optional[str] = None
    repository: str = ""
    ref: str = ""
    revision: str = ""
    detail: str = ""
    attempts: int = 0
    timestamp: float = Field(default_factory=time.time)


class ManualSyncRequest(BaseModel):
    """
    Body of POST /sync. Either name the application directly or the (repository, branch)
    pair whose routes should be triggered.
    """
    application: Optional[str] = None
    repository: Optional[str] = None
    branch: Optional[str] = None
    revision: Optional[str] = None

    @model_validator(mode="after")
    def _target_given(self):
        if not self.application and not (self.repository and self.branch):
            raise ValueError("Provide 'application' or both 'repository' and 'branch'.")
        return self
