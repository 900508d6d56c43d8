"""flowmail core package.

Public entrypoints:
- flowmail.core.api: stable API surface for integrations/plugins
- flowmail.core.runner.run_flow: run a flow programmatically

Internal modules may change without notice.
"""

from __future__ import annotations

# Ensure built-in steps/connectors are registered on import.
from flowmail.core.runtime import _bootstrap as _register  # noqa: F401

from flowmail.core.runner import run_flow

__all__ = ["run_flow"]
