"""Randomized TTL for forced-unhealthy rotation.

Every instance in a fleet gets its own TTL drawn from ``[ttl, ttl + offset)``
so that instances reaching their TTL, and being drained and restarted by the
load balancer, are spread over the jitter window instead of all at once.
"""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING

from traefik_healthcheck.logging import get_logger

if TYPE_CHECKING:
    from traefik_healthcheck.config import Config

logger = get_logger(__name__)


def compute_ttl(ttl: int, offset: int, rng: random.Random | None = None) -> int:
    """Draw a TTL in ``[ttl, ttl + offset)``.

    Args:
        ttl: Base TTL in seconds.
        offset: Width of the jitter window in seconds. ``0`` returns ``ttl``.
        rng: Random generator to draw from. Defaults to one seeded from the
            current time.

    Returns:
        The randomized TTL in seconds.

    Raises:
        ValueError: If ``ttl`` or ``offset`` is negative.
    """
    if ttl < 0:
        raise ValueError(f"ttl must be >= 0, got {ttl}")
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")
    if offset == 0:
        return ttl

    if rng is None:
        rng = random.Random(time.time())
    return ttl + rng.randrange(offset)


def resolve_effective_ttl(config: Config, rng: random.Random | None = None) -> int:
    """Resolve the TTL used for the lifetime of the process.

    Returns 0 (no rotation) when the configured base TTL is 0; the jitter
    generator is not consulted in that case.
    """
    if not config.ttl_rotation_enabled:
        return 0
    effective = compute_ttl(config.healthy_ttl_sec, config.healthy_ttl_offset, rng)
    logger.debug(
        "Drew TTL %ss from base %ss and offset %ss",
        effective,
        config.healthy_ttl_sec,
        config.healthy_ttl_offset,
    )
    return effective


__all__ = ["compute_ttl", "resolve_effective_ttl"]
