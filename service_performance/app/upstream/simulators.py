"""
Simulated upstream calls standing in for a slow database or external API.
"""

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from shared.errors import UpstreamFailure
from shared.logging import get_logger

from service_performance.app.resources.registry import EXTERNAL_API, RESOURCES


SLOW = "slow"
FAST = "fast"

_RESULT_LABELS = {
    (SLOW, False): "Database result",
    (SLOW, True): "External API result",
    (FAST, False): "Fast database result",
    (FAST, True): "Fast external API result",
}


class UpstreamSimulator:
    """Resolves with a payload after a fixed delay.

    Payload ids come from a per-simulator sequence, so results only vary in
    their timestamps. With ``fail=True`` every call rejects with
    UpstreamFailure once the delay has elapsed.
    """

    def __init__(
        self,
        resource: str,
        kind: str,
        delay_seconds: float,
        *,
        profile: str = FAST,
        fail: bool = False,
    ) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")

        self.resource = resource
        self.kind = kind
        self.delay_seconds = delay_seconds
        self.profile = profile
        self.fail = fail
        self.calls = 0
        self._sequence = itertools.count(1)
        self.logger = get_logger(f"performance.upstream.{resource}")

    @property
    def is_external(self) -> bool:
        return self.kind == EXTERNAL_API

    async def call(self) -> Dict[str, Any]:
        """Perform one simulated upstream round trip."""
        self.calls += 1
        self.logger.debug(
            "Upstream call",
            profile=self.profile,
            kind=self.kind,
            delay_seconds=self.delay_seconds,
        )
        await asyncio.sleep(self.delay_seconds)

        if self.fail:
            raise UpstreamFailure(self.resource, "Simulated upstream failure", {"kind": self.kind})

        now = datetime.now(timezone.utc)
        label = _RESULT_LABELS[(self.profile, self.is_external)]
        field = "externalData" if self.is_external else "data"
        return {
            "id": next(self._sequence),
            field: f"{label} {int(now.timestamp() * 1000)}",
            "timestamp": now.isoformat(),
        }


def build_simulators(
    profile: str = FAST,
    *,
    delay_scale: float = 1.0,
    failing: Optional[Iterable[str]] = None,
) -> Dict[str, UpstreamSimulator]:
    """Create one simulator per registered resource for the given profile."""
    if profile not in (SLOW, FAST):
        raise ValueError(f"Unknown upstream profile: {profile}")

    failing_set = set(failing or ())
    simulators: Dict[str, UpstreamSimulator] = {}
    for name, definition in RESOURCES.items():
        delay = definition.slow_delay_seconds if profile == SLOW else definition.fast_delay_seconds
        simulators[name] = UpstreamSimulator(
            name,
            definition.kind,
            delay * delay_scale,
            profile=profile,
            fail=name in failing_set,
        )
    return simulators
