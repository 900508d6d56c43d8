from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple, Type

from flowmail.core.connectors.base import ConnectorBase, ConnectorInit

log = logging.getLogger("flowmail.core.registry.connectors")

# kind -> methods a driver class must define to be registered under that kind
REQUIRED_METHODS: Dict[str, Tuple[str, ...]] = {
    "mail": ("send", "default_sender", "close"),
}


class ConnectorRegistry:
    """Connector classes keyed by (kind, driver).

        @REGISTRY.register("mail", "smtp")
        class SMTPMail: ...

        transport = REGISTRY.create(name="mail", kind="mail", driver="smtp", config={...})

    A later registration for the same key replaces the earlier one, so a
    plugin can override a built-in transport.
    """

    def __init__(self) -> None:
        self._classes: Dict[Tuple[str, str], Type] = {}

    def register(self, kind: str, driver: str):
        def deco(cls):
            missing = [m for m in REQUIRED_METHODS.get(kind, ()) if not callable(getattr(cls, m, None))]
            if missing:
                raise TypeError(f"{cls.__name__} cannot be a {kind} connector; missing {missing}")
            previous = self._classes.get((kind, driver))
            if previous is not None and previous is not cls:
                log.info(f"connector {kind}:{driver} {previous.__name__} replaced by {cls.__name__}")
            self._classes[(kind, driver)] = cls
            return cls
        return deco

    def get(self, kind: str, driver: str) -> Type:
        try:
            return self._classes[(kind, driver)]
        except KeyError:
            raise KeyError(f"Unknown connector: {kind}:{driver}. Loaded: {self.list()}") from None

    def drivers(self, kind: str) -> List[str]:
        return sorted(d for (k, d) in self._classes if k == kind)

    def list(self) -> List[str]:
        return sorted(f"{k}:{d}" for (k, d) in self._classes)

    def create(self, *, name: str, kind: str, driver: str, config: dict, options: dict | None = None,
               ctx: Any | None = None) -> ConnectorBase:
        cls = self.get(kind, driver)
        return cls(ConnectorInit(name=name, kind=kind, driver=driver, config=config or {}, options=options or {}, ctx=ctx))


REGISTRY = ConnectorRegistry()


def register_connector(kind: str, driver: str):
    return REGISTRY.register(kind, driver)


def get_connector(kind: str, driver: str):
    return REGISTRY.get(kind, driver)


def list_connectors() -> list[str]:
    return REGISTRY.list()
