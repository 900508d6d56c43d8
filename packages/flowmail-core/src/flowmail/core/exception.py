"""Centralized customized exceptions for flowmail.

All project-specific exceptions live in this module so that steps, connectors
and the runner share one set of classes:

    from flowmail.core.exception import DispatchError
"""

from __future__ import annotations

__all__ = [
    "SpecError",
    "ConfigurationBindingError",
    "MailValidationError",
    "ConnectorError",
    "DispatchError",
    "PluginLoadError",
]


class SpecError(ValueError):
    """Raised when a flow spec is invalid (schema or semantic)."""


class ConfigurationBindingError(SpecError):
    """Raised when step inputs cannot be bound to a step configuration."""

    def __init__(self, msg: str, *, step_type: str | None = None, errors: list | None = None):
        super().__init__(msg)
        self.step_type = step_type
        self.errors = list(errors or [])


class MailValidationError(ValueError):
    """Raised when a mail configuration is not sendable (missing subject/body/recipients)."""


class ConnectorError(RuntimeError):
    """Base error for connector failures."""


class DispatchError(ConnectorError):
    """Raised when a mail transport cannot deliver a message."""


class PluginLoadError(RuntimeError):
    """Raised (with plugin_strict) when a plugin file or entry point cannot be loaded."""
