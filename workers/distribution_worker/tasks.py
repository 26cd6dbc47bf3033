"""Distribution worker tasks."""

from __future__ import annotations

from workers.distribution_worker.worker import (
    DistributionRunResult,
    DistributionWorkerSettings,
    load_settings,
    run_distribution_with_retries,
)


def distribution_tick(settings: DistributionWorkerSettings | None = None) -> DistributionRunResult:
    """Run a single distribution tick, for cron-style scheduling."""
    resolved_settings = settings or load_settings()
    return run_distribution_with_retries(resolved_settings)
