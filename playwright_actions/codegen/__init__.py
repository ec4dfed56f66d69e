"""Record dispatched actions and render them as test modules."""

from .feature import CodegenFeature
from .generator import PlaywrightTestGenerator
from .manager import CodegenBackend, CodegenSessionManager, parse_options

__all__ = [
    "CodegenBackend",
    "CodegenFeature",
    "CodegenSessionManager",
    "PlaywrightTestGenerator",
    "parse_options",
]
