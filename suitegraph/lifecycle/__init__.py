"""Run configuration."""

from suitegraph.lifecycle.config import DEFAULT_CONFIG, RunConfig

__all__ = [
    "DEFAULT_CONFIG",
    "RunConfig",
]
