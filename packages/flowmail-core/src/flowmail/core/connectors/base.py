from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Protocol, runtime_checkable


@runtime_checkable
class ConnectorBase(Protocol):
    """
    Public connector contract.

    A connector is a thin wrapper around a concrete transport (SMTP session,
    in-process mailbox, ...). Steps use its primitives; connectors are bound
    to one resolved resource and expose a best-effort lifecycle via close() /
    context manager.
    """

    name: str
    kind: str
    driver: str
    config: Dict[str, Any]
    options: Dict[str, Any]

    def close(self) -> None: ...

    def __enter__(self): ...
    def __exit__(self, exc_type, exc, tb) -> None: ...


@runtime_checkable
class MailTransport(Protocol):
    """Contract used by the mail step: one synchronous delivery per send()."""

    def default_sender(self) -> str | None: ...

    def send(self, msg) -> None: ...


@dataclass
class ConnectorInit:
    name: str
    kind: str
    driver: str
    config: Dict[str, Any]
    options: Dict[str, Any]
    ctx: Any | None = None
