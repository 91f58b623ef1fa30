# config.py

import copy
import os
import yaml
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


class RetrySettings(BaseModel):
    max_attempts: int = Field(3, ge=1)
    base_delay: float = Field(0.5, ge=0)
    max_delay: float = Field(30.0, ge=0)
    multiplier: float = Field(2.0, ge=1)
    jitter: float = Field(0.25, ge=0, le=1)


class ArgoCDSettings(BaseModel):
    base_url: str = ""
    token: str = ""
    verify_tls: bool = True
    timeout: float = 10.0
    prune: bool = False
    dry_run: bool = False
    # Send the pushed commit SHA as the sync revision instead of letting ArgoCD resolve the branch head.
    pin_revision: bool = False


class SyncRoute(BaseModel):
    """
    One (repository, branch) -> application mapping.
    `paths` optionally restricts the route to pushes touching those prefixes.
    """
    branch: str
    application: str
    paths: List[str] = Field(default_factory=list)


class EmailSettings(BaseModel):
    smtp_server: Optional[str] = None
    smtp_port: int = 587
    use_tls: bool = True
    username: Optional[str] = None
    password: Optional[str] = None
    sender_email: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)


class NotificationSettings(BaseModel):
    slack_webhook_url: str = ""
    email: Optional[EmailSettings] = None


class Settings(BaseModel):
    github_webhook_secret: str = ""
    verify_signatures: bool = True
    webhook_path: str = "/webhook"
    debounce_seconds: float = Field(5.0, ge=0)
    settle_seconds: float = Field(1.0, ge=0)
    dedupe_idle_ttl_seconds: float = Field(3600.0, gt=0)
    shutdown_grace_seconds: float = Field(10.0, ge=0)
    dispatch_workers: int = Field(16, ge=1)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    argocd: ArgoCDSettings = Field(default_factory=ArgoCDSettings)
    repo_sync_map: Dict[str, List[SyncRoute]] = Field(default_factory=dict)
    sync_api_key: str = ""
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    log_db_path: Optional[str] = None
    event_log_size: int = Field(500, gt=0)
    debug: bool = False

    @field_validator("webhook_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        if not value.startswith("/"):
            return f"/{value}"
        return value

    def applications(self) -> List[str]:
        """All distinct application names referenced by the route table."""
        seen = []
        for routes in self.repo_sync_map.values():
            for route in routes:
                if route.application not in seen:
                    seen.append(route.application)
        return seen


def _apply_env_overrides(raw: dict) -> dict:
    """
    Override sensitive settings with environment variables (e.g., for CI/CD or k8s secrets).
    """
    if os.getenv("WEBHOOK_SECRET"):
        raw["github_webhook_secret"] = os.getenv("WEBHOOK_SECRET")
    if os.getenv("SYNC_API_KEY"):
        raw["sync_api_key"] = os.getenv("SYNC_API_KEY")
    if os.getenv("DEBUG_MODE"):
        raw["debug"] = os.getenv("DEBUG_MODE").lower() == "true"

    argocd = raw.setdefault("argocd", {}) or {}
    raw["argocd"] = argocd
    if os.getenv("ARGOCD_TOKEN"):
        argocd["token"] = os.getenv("ARGOCD_TOKEN")
    if os.getenv("ARGOCD_BASE_URL"):
        argocd["base_url"] = os.getenv("ARGOCD_BASE_URL")

    notifications = raw.setdefault("notifications", {}) or {}
    raw["notifications"] = notifications
    if os.getenv("SLACK_WEBHOOK_URL"):
        notifications["slack_webhook_url"] = os.getenv("SLACK_WEBHOOK_URL")

    email = notifications.get("email")
    if email is not None:
        email['password'] = os.getenv("EMAIL_PASSWORD", email.get('password'))
        email['username'] = os.getenv("EMAIL_USERNAME", email.get('username'))
        email['smtp_server'] = os.getenv("SMTP_SERVER", email.get('smtp_server'))
        email['smtp_port'] = int(os.getenv("SMTP_PORT", email.get('smtp_port', 587)))
        email['use_tls'] = os.getenv("EMAIL_USE_TLS", str(email.get('use_tls', True))).lower() == "true"
    return raw


def parse_settings(raw: dict) -> Settings:
    """Validate a raw configuration mapping into Settings."""
    try:
        settings = Settings.model_validate(_apply_env_overrides(copy.deepcopy(raw or {})))
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        raise ConfigError(str(e)) from e

    if settings.verify_signatures and not settings.github_webhook_secret:
        raise ConfigError("github_webhook_secret is required when verify_signatures is enabled.")
    if not settings.argocd.base_url:
        raise ConfigError("argocd.base_url is required.")
    if settings.debounce_seconds and settings.settle_seconds >= settings.debounce_seconds:
        logger.warning("settle_seconds is not shorter than debounce_seconds. Pushes during the settle delay are coalesced past the interval.")
    if not settings.repo_sync_map:
        logger.warning("repo_sync_map is empty. Every push will be skipped.")
    if not settings.argocd.token:
        logger.warning("ArgoCD token is missing. Sync triggers will be sent unauthenticated.")
    if not settings.sync_api_key:
        logger.warning("sync_api_key is not set. Manual sync and status endpoints are disabled.")
    return settings


def load_config(path: Optional[str] = None) -> Settings:
    """
    Load configuration from the YAML file specified by CONFIG_PATH environment variable or the default path.

    Returns:
        Settings: Validated configuration.
    """
    config_path = path or os.getenv("CONFIG_PATH", "config.yaml")

    if not os.path.exists(config_path):
        logger.error(f"Configuration file '{config_path}' not found.")
        raise ConfigError(f"Configuration file '{config_path}' not found.")

    try:
        with open(config_path, 'r') as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file '{config_path}': {e}")
        raise ConfigError(f"Error parsing YAML file '{config_path}': {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file '{config_path}' must contain a mapping.")

    settings = parse_settings(raw)
    logger.info(f"Configuration loaded successfully from '{config_path}'.")

    # Log summary of key settings (without sensitive details)
    logger.info(f"ArgoCD base URL: {settings.argocd.base_url}")
    logger.info(f"Debounce interval: {settings.debounce_seconds}s, settle delay: {settings.settle_seconds}s")
    logger.info(f"Tracked repositories: {sorted(settings.repo_sync_map)}")
    return settings
