"""Import side effects: register built-in connectors and steps."""

from __future__ import annotations

from flowmail.core.builtins import connectors as _connectors  # noqa: F401
from flowmail.core.builtins import steps as _steps  # noqa: F401
