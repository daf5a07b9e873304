"""
Registry of the logical resources served by the Performance Optimization service.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from shared.errors import InvalidResourceKey


DATABASE = "database"
EXTERNAL_API = "external_api"


@dataclass(frozen=True)
class ResourceDefinition:
    """A logical resource and the latency profile of its upstream."""

    name: str
    kind: str
    slow_delay_seconds: float
    fast_delay_seconds: float

    @property
    def optimization(self) -> str:
        """Label reported on the cached path."""
        return "CACHING + FAST_API" if self.kind == EXTERNAL_API else "CACHING + FAST_DB"


RESOURCES: Dict[str, ResourceDefinition] = {
    definition.name: definition
    for definition in (
        ResourceDefinition("users", DATABASE, 1.5, 0.05),
        ResourceDefinition("posts", DATABASE, 1.2, 0.03),
        ResourceDefinition("comments", DATABASE, 1.8, 0.04),
        ResourceDefinition("external-data", EXTERNAL_API, 2.0, 0.1),
        ResourceDefinition("analytics", DATABASE, 1.6, 0.06),
        ResourceDefinition("notifications", DATABASE, 1.4, 0.035),
    )
}

RESOURCE_NAMES: Tuple[str, ...] = tuple(RESOURCES)


def resolve_resource(name: str) -> ResourceDefinition:
    """Return the definition for ``name`` or raise InvalidResourceKey."""
    try:
        return RESOURCES[name]
    except KeyError:
        raise InvalidResourceKey(name, known=RESOURCE_NAMES) from None
