"""Site adapters and their registry."""

from .base import PageParse, SiteAdapter
from .css import CssListingAdapter
from .registry import AdapterRegistry, default_registry
from .x1337 import X1337Adapter
from .yts import YtsAdapter

__all__ = [
    "AdapterRegistry",
    "CssListingAdapter",
    "PageParse",
    "SiteAdapter",
    "X1337Adapter",
    "YtsAdapter",
    "default_registry",
]
