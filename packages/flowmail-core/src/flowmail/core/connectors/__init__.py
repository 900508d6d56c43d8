from __future__ import annotations

from flowmail.core.connectors.base import ConnectorBase, ConnectorInit, MailTransport

__all__ = ["ConnectorBase", "ConnectorInit", "MailTransport"]
