"""
Remote sink adapters for the replay queue.

The Cosmos DB sink requires the optional ``cosmos`` extra.
"""

try:
    from .cosmos import CosmosSink, CosmosSinkConfig  # noqa: F401

    _has_cosmos = True
except ImportError:
    _has_cosmos = False

__all__: list[str] = []

if _has_cosmos:
    __all__.extend(["CosmosSink", "CosmosSinkConfig"])
