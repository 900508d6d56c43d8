from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from flowmail.core.connectors.base import ConnectorBase
from flowmail.core.registry.connectors import REGISTRY

log = logging.getLogger("flowmail.core.connectors.manager")

CACHE_POLICIES = ("run", "process", "none")

CacheKey = Tuple[str, str, str]

# Shared by every run in the process; only filled for cache="process".
_PROCESS_CACHE: Dict[CacheKey, ConnectorBase] = {}
_PROCESS_LOCK = threading.Lock()


@dataclass
class Connectors:
    """Opens the connectors of one run's resources and decides how long they live.

        transport = ctx.connectors.mail("mail")
        transport.send(msg)

    Cache policy, first match wins:
        1) the `cache=` argument
        2) Settings.connector_cache_disabled -> "none"
        3) the resource's options.cache
        4) Settings.connector_cache_default

    "run" connectors are closed by close_all() at the end of the run,
    "process" connectors are shared between runs and stay open, "none"
    creates a new connector on every call and leaves closing to the caller.
    """

    ctx: Any
    resources: Dict[str, dict]
    settings: Any
    _run_cache: Dict[CacheKey, ConnectorBase] = field(default_factory=dict, init=False, repr=False)

    def _policy(self, resource: dict, cache: Optional[str]) -> str:
        if cache:
            policy = cache
        elif self.settings.connector_cache_disabled:
            policy = "none"
        else:
            policy = (resource.get("options") or {}).get("cache") or self.settings.connector_cache_default or "run"
        policy = str(policy).strip().lower()
        if policy not in CACHE_POLICIES:
            raise ValueError(f"Unknown connector cache policy: {policy!r}. Expected one of {list(CACHE_POLICIES)}")
        return policy

    def _resource(self, name: str, kind: str) -> dict:
        resource = self.resources.get(name)
        if resource is None:
            raise KeyError(f"Unknown resource: {name}. Known: {sorted(self.resources)}")
        if resource["kind"] != kind:
            raise KeyError(f"Resource {name} is kind={resource['kind']}, requested kind={kind}")
        return resource

    def _open(self, name: str, resource: dict) -> ConnectorBase:
        log.debug(f"opening connector {resource['kind']}:{resource['driver']} for resource {name}")
        return REGISTRY.create(
            name=name,
            kind=resource["kind"],
            driver=resource["driver"],
            config=resource.get("config") or {},
            options=resource.get("options") or {},
            ctx=self.ctx,
        )

    def get(self, *, kind: str, name: str, cache: Optional[str] = None) -> ConnectorBase:
        resource = self._resource(name, kind)
        policy = self._policy(resource, cache)
        if policy == "none":
            return self._open(name, resource)

        key = (kind, resource["driver"], name)
        if policy == "process":
            with _PROCESS_LOCK:
                conn = _PROCESS_CACHE.get(key)
                if conn is None:
                    conn = _PROCESS_CACHE[key] = self._open(name, resource)
                return conn

        conn = self._run_cache.get(key)
        if conn is None:
            conn = self._run_cache[key] = self._open(name, resource)
        return conn

    def mail(self, name: str, *, cache: Optional[str] = None) -> ConnectorBase:
        return self.get(kind="mail", name=name, cache=cache)

    def close_all(self) -> None:
        for key, conn in list(self._run_cache.items()):
            try:
                conn.close()
            except Exception:
                log.warning(f"closing connector {key[0]}:{key[1]} ({key[2]}) failed; continuing", exc_info=True)
        self._run_cache.clear()
