"""
Build-time errors raised while synthesizing a topology.

None of these are transient: each one means the configuration or the
builders are wrong, and no manifest is produced.
"""

from typing import List, Sequence


class TopologyError(Exception):
    """Base class for every synthesis failure."""


class ConfigurationError(TopologyError, ValueError):
    """Missing or contradictory input, detected before any node is created."""


class NamingCollision(TopologyError):
    def __init__(self, name: str, first: str, second: str):
        self.name = name
        self.first = first
        self.second = second
        super().__init__(
            f"Identifier '{name}' is produced by both {first} and {second}"
        )


class UnresolvedReference(TopologyError):
    def __init__(self, dependent: str, source: str, attribute: str, reason: str):
        self.dependent = dependent
        self.source = source
        self.attribute = attribute
        super().__init__(
            f"Resource '{dependent}' references '{source}.{attribute}': {reason}"
        )


class OrderingCycle(TopologyError):
    def __init__(self, cycle: Sequence[str]):
        self.cycle: List[str] = list(cycle)
        super().__init__("Dependency cycle: " + " -> ".join(self.cycle))
