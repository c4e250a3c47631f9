# コアモジュール
# パターンリゾルバ、DOM アダプタ、ロケータルーターを提供

from .adapter import DomAdapter, ElementState, PlaywrightDomAdapter
from .resolver import (
    FailureReason,
    PatternResolver,
    ResolutionFailure,
    ResolutionResult,
    ResolvedLocator,
    build_chain,
)
from .router import LocatorRouter, Route, RouteKind, direct_selector

__all__ = [
    "DomAdapter",
    "ElementState",
    "FailureReason",
    "LocatorRouter",
    "PatternResolver",
    "PlaywrightDomAdapter",
    "ResolutionFailure",
    "ResolutionResult",
    "ResolvedLocator",
    "Route",
    "RouteKind",
    "build_chain",
    "direct_selector",
]
