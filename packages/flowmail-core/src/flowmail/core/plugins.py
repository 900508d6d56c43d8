"""Plugin loading.

Plugins register extra steps or mail transports by importing the registries
(`flowmail.core.api.register_step`, `register_connector`). Two sources:

- entry points in the `flowmail.plugins` group; the loaded object is called,
  or its `register()` is called
- `.py` files under `Settings.plugin_paths` (names starting with `_` are skipped)

Each plugin is loaded at most once per process, so validating and then
running a flow does not import plugin files twice. With `plugin_strict` a
plugin that fails to load raises PluginLoadError; otherwise it is logged and
skipped.
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
import threading
from importlib.metadata import entry_points
from pathlib import Path
from typing import Callable, List, Set

from flowmail.core.exception import PluginLoadError

log = logging.getLogger("flowmail.core.plugins")

ENTRY_POINT_GROUP = "flowmail.plugins"

_LOADED: Set[str] = set()
_LOCK = threading.RLock()


def _load_once(key: str, label: str, load: Callable[[], None], *, strict: bool) -> bool:
    with _LOCK:
        if key in _LOADED:
            return False
        try:
            load()
        except Exception as e:
            if strict:
                raise PluginLoadError(f"Failed loading plugin {label}: {e}") from e
            log.warning(f"Failed loading plugin {label}; continuing", exc_info=True)
            return False
        _LOADED.add(key)
    log.info(f"Loaded plugin {label}")
    return True


def _call_entry_point(ep) -> None:
    obj = ep.load()
    if callable(obj):
        obj()
    elif hasattr(obj, "register"):
        obj.register()
    else:
        raise TypeError(f"entry point {ep.name} is neither callable nor has register()")


def load_plugins_from_entrypoints(group: str = ENTRY_POINT_GROUP, *, strict: bool = True) -> List[str]:
    """Load every entry point in `group`; returns the names loaded by this call."""
    try:
        eps = list(entry_points().select(group=group))
    except Exception as e:
        if strict:
            raise PluginLoadError(f"Failed reading entry points for group={group}: {e}") from e
        log.warning("Failed reading entry points; continuing", exc_info=True)
        return []

    loaded = []
    for ep in eps:
        key = f"ep:{group}:{ep.name}={getattr(ep, 'value', '')}"
        if _load_once(key, f"entry point {ep.name}", lambda ep=ep: _call_entry_point(ep), strict=strict):
            loaded.append(ep.name)
    return loaded


def _exec_file(py: Path) -> None:
    digest = hashlib.sha1(str(py).encode("utf-8")).hexdigest()[:10]
    spec = importlib.util.spec_from_file_location(f"flowmail_plugin_{py.stem}_{digest}", py)
    if spec is None or spec.loader is None:
        raise ImportError(f"cannot import {py}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)


def load_plugins_from_paths(paths: List[str], *, strict: bool = True) -> List[str]:
    """Import the plugin files under `paths` (files or directories); returns the files loaded by this call."""
    loaded = []
    for raw in paths:
        if not raw:
            continue
        root = Path(raw).expanduser().resolve()
        if not root.exists():
            if strict:
                raise PluginLoadError(f"Plugin path not found: {root}")
            log.warning(f"Plugin path not found: {root}; skipping")
            continue
        files = [root] if root.is_file() else sorted(root.rglob("*.py"))
        for py in files:
            if py.name.startswith("_"):
                continue
            if _load_once(f"file:{py}", f"file {py}", lambda py=py: _exec_file(py), strict=strict):
                loaded.append(str(py))
    return loaded


def load_all_plugins(*, settings) -> List[str]:
    return (
        load_plugins_from_entrypoints(strict=settings.plugin_strict)
        + load_plugins_from_paths(settings.plugin_paths, strict=settings.plugin_strict)
    )
