from __future__ import annotations

import os
from importlib import import_module
from typing import List

from pydantic import BaseModel, Field


def _flag(value: str | None, default: str) -> bool:
    return (value or default).strip().lower() in ("1", "true", "yes", "y", "on")


class Settings(BaseModel):
    # Defaults are static. Use load_settings(env=...) to read from an env snapshot.
    state_root: str = "/tmp/state"

    plugin_paths: List[str] = Field(default_factory=list)
    plugin_strict: bool = True
    log_level: str = "INFO"

    # Observability
    # - log_format: "text" (default) or "json". When json, flowmail logs emit a single JSON
    #   object per line, suitable for log aggregation.
    log_format: str = "text"

    # Connector caching
    # - connector_cache_default: "run" (cache within a single flow run)
    # - "process" reuses connectors across runs in the same Python process
    # - "none" disables caching by default
    connector_cache_default: str = "run"
    connector_cache_disabled: bool = False

    # Mail step defaults (applied at execution time, never stored on the step config)
    mail_resource: str = "mail"
    mail_default_from: str | None = None
    mail_default_charset: str = "UTF-8"

    # Fallback SMTP resource, used when a flow does not declare `mail_resource`
    smtp_host: str | None = None
    smtp_port: int = 25
    smtp_username: str | None = None
    smtp_password: str | None = None
    # None leaves the choice to the smtp driver (STARTTLS on port 587)
    smtp_starttls: bool | None = None
    smtp_timeout: float = 30

    @classmethod
    def from_env(cls, env: dict[str, str], overrides: dict | None = None) -> "Settings":
        """Build Settings from an explicit env snapshot (does not read os.environ)."""
        def g(key: str, default: str | None = None) -> str | None:
            return env.get(key, default)  # type: ignore[return-value]

        data = {
            "state_root": g("FLOWMAIL_STATE_ROOT", "/tmp/state"),
            "plugin_paths": [p for p in (g("FLOWMAIL_PLUGIN_PATHS", "") or "").split(",") if p],
            "plugin_strict": _flag(g("FLOWMAIL_PLUGIN_STRICT"), "true"),
            "log_level": g("FLOWMAIL_LOG_LEVEL", "INFO"),
            "log_format": g("FLOWMAIL_LOG_FORMAT", "text"),
            "connector_cache_default": g("FLOWMAIL_CONNECTOR_CACHE_DEFAULT", "run"),
            "connector_cache_disabled": _flag(g("FLOWMAIL_CONNECTOR_CACHE_DISABLED"), "false"),
            "mail_resource": g("FLOWMAIL_MAIL_RESOURCE", "mail"),
            "mail_default_from": g("FLOWMAIL_MAIL_FROM") or None,
            "mail_default_charset": g("FLOWMAIL_MAIL_CHARSET", "UTF-8"),
            "smtp_host": g("FLOWMAIL_SMTP_HOST") or None,
            "smtp_port": int(g("FLOWMAIL_SMTP_PORT", "25") or 25),
            "smtp_username": g("FLOWMAIL_SMTP_USERNAME") or None,
            "smtp_password": g("FLOWMAIL_SMTP_PASSWORD") or None,
            "smtp_starttls": _flag(g("FLOWMAIL_SMTP_STARTTLS"), "false") if g("FLOWMAIL_SMTP_STARTTLS") else None,
            "smtp_timeout": float(g("FLOWMAIL_SMTP_TIMEOUT", "30") or 30),
        }
        if overrides:
            data.update(overrides)
        return cls(**data)

    def default_mail_resource(self) -> dict | None:
        """Resource dict for the fallback SMTP transport, or None when no host is configured."""
        if not self.smtp_host:
            return None
        config = {
            "host": self.smtp_host,
            "port": self.smtp_port,
        }
        if self.smtp_starttls is not None:
            config["starttls"] = self.smtp_starttls
        if self.smtp_username:
            config["username"] = self.smtp_username
        if self.smtp_password:
            config["password"] = self.smtp_password
        if self.mail_default_from:
            config["from_addr"] = self.mail_default_from
        return {"kind": "mail", "driver": "smtp", "config": config, "options": {"timeout": self.smtp_timeout}}


def load_settings(overrides: dict | None = None, *, env: dict[str, str] | None = None) -> Settings:
    """Load settings from (1) env snapshot, (2) optional settings module, (3) explicit overrides.

    If env is not provided, a snapshot is built from os.environ.
    """
    env2 = {k: str(v) for k, v in os.environ.items()} if env is None else env
    s = Settings.from_env(env2)
    mod = env2.get("FLOWMAIL_SETTINGS_MODULE")
    if mod:
        m = import_module(mod)
        data = getattr(m, "SETTINGS", {})
        if not isinstance(data, dict):
            raise TypeError("FLOWMAIL_SETTINGS_MODULE must expose SETTINGS: dict")
        s = s.model_copy(update=data)
    if overrides:
        s = s.model_copy(update=overrides)
    return s
