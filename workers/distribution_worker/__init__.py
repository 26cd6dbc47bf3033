"""Distribution worker module exports."""

from .worker import (
    DistributionRunResult,
    DistributionWorkerSettings,
    load_settings,
    run_distribution_once,
    run_distribution_with_retries,
    run_forever,
)

__all__ = [
    "DistributionRunResult",
    "DistributionWorkerSettings",
    "load_settings",
    "run_distribution_once",
    "run_distribution_with_retries",
    "run_forever",
]
