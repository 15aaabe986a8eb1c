"""
Bridges from configuration to engine inputs.

Engines never import configuration; these functions translate the frozen
``EngineConfiguration`` into the plain engine parameter objects.
"""

from __future__ import annotations

from backoffice_config.schema import EngineConfiguration
from backoffice_engines.scheduling import SchedulingPolicy, TemporalScheduler


def scheduling_policy(config: EngineConfiguration) -> SchedulingPolicy:
    return SchedulingPolicy(
        urgent_days=config.scheduling.urgent_days,
        due_soon_days=config.scheduling.due_soon_days,
        renewal_window_days=config.scheduling.renewal_window_days,
        fallback_years=config.renewal.fallback_years,
    )


def build_scheduler(config: EngineConfiguration) -> TemporalScheduler:
    return TemporalScheduler(scheduling_policy(config))
