"""Map adapter names from source configs to adapter classes."""

from __future__ import annotations

from threading import Lock
from typing import Callable, Dict, Type

from ..config import SourceConfig
from .base import SiteAdapter


class AdapterRegistry:
    """New sites are supported by registering a class here."""

    def __init__(self) -> None:
        self._adapters: Dict[str, Type[SiteAdapter]] = {}
        self._lock = Lock()

    def register(
        self, name: str, adapter_cls: Type[SiteAdapter] | None = None
    ) -> Type[SiteAdapter] | Callable[[Type[SiteAdapter]], Type[SiteAdapter]]:
        def _register(cls: Type[SiteAdapter]) -> Type[SiteAdapter]:
            with self._lock:
                self._adapters[name] = cls
            return cls

        if adapter_cls is None:
            return _register
        return _register(adapter_cls)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._adapters)

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def create(self, source: SourceConfig) -> SiteAdapter:
        with self._lock:
            adapter_cls = self._adapters.get(source.adapter)
        if adapter_cls is None:
            raise KeyError(f"No adapter registered for '{source.adapter}'")
        return adapter_cls(source)


def default_registry() -> AdapterRegistry:
    from .css import CssListingAdapter
    from .x1337 import X1337Adapter
    from .yts import YtsAdapter

    registry = AdapterRegistry()
    registry.register(YtsAdapter.name, YtsAdapter)
    registry.register(X1337Adapter.name, X1337Adapter)
    registry.register(CssListingAdapter.name, CssListingAdapter)
    return registry


__all__ = ["AdapterRegistry", "default_registry"]
