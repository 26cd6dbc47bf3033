"""Scheduler that triggers distribution batches on the API at a fixed interval."""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger("presale.distribution_worker")

_ENV_PREFIX = "PRESALE_DISTRIBUTION_WORKER_"


@dataclass(frozen=True)
class DistributionWorkerSettings:
    api_base_url: str
    interval_s: int
    timeout_s: float
    batch_size: int | None
    auth_token: str | None
    max_retries: int
    retry_backoff_s: float


@dataclass(frozen=True)
class DistributionRunResult:
    ok: bool
    processed: int
    total: int
    status_code: int | None = None
    error: str | None = None
    attempts: int = 1
    failures: tuple[str, ...] = ()
    # Request was sent but no response arrived; the batch may still be running.
    response_lost: bool = False


def load_settings(env: dict[str, str] | None = None) -> DistributionWorkerSettings:
    source = env if env is not None else os.environ

    def read(name: str, default: str | None = None) -> str | None:
        return source.get(f"{_ENV_PREFIX}{name}", default)

    api_base_url = (read("API_BASE_URL", "http://localhost:8000") or "").strip()
    interval_s = int(read("INTERVAL_S", "60"))
    timeout_s = float(read("TIMEOUT_S", "3900"))
    batch_size_value = read("BATCH_SIZE")
    auth_token = read("AUTH_TOKEN")
    max_retries = int(read("MAX_RETRIES", "2"))
    retry_backoff_s = float(read("RETRY_BACKOFF_S", "5"))

    if interval_s < 1:
        raise ValueError(f"{_ENV_PREFIX}INTERVAL_S must be >= 1")
    if timeout_s <= 0:
        raise ValueError(f"{_ENV_PREFIX}TIMEOUT_S must be > 0")
    if max_retries < 0:
        raise ValueError(f"{_ENV_PREFIX}MAX_RETRIES must be >= 0")
    if retry_backoff_s < 0:
        raise ValueError(f"{_ENV_PREFIX}RETRY_BACKOFF_S must be >= 0")

    batch_size: int | None = None
    if batch_size_value is not None and batch_size_value.strip() != "":
        batch_size = int(batch_size_value)
        if not 1 <= batch_size <= 100:
            raise ValueError(f"{_ENV_PREFIX}BATCH_SIZE must be between 1 and 100")

    return DistributionWorkerSettings(
        api_base_url=api_base_url.rstrip("/"),
        interval_s=interval_s,
        timeout_s=timeout_s,
        batch_size=batch_size,
        auth_token=auth_token,
        max_retries=max_retries,
        retry_backoff_s=retry_backoff_s,
    )


def _decode_distribution_response(raw: str) -> tuple[bool, int, int, tuple[str, ...], str | None]:
    if not raw:
        return False, 0, 0, (), "Empty distribution response"
    try:
        body = json.loads(raw)
    except json.JSONDecodeError:
        return False, 0, 0, (), "Invalid JSON in distribution response"
    if not isinstance(body, dict):
        return False, 0, 0, (), "Distribution response must be an object"

    try:
        processed = int(body.get("processed", 0))
        total = int(body.get("total", 0))
    except (TypeError, ValueError):
        return False, 0, 0, (), "Invalid processed/total values in distribution response"

    if processed < 0 or total < processed:
        return False, 0, 0, (), "processed must be between 0 and total in distribution response"

    failures = tuple(
        f"{item.get('orderId')}: {item.get('error')}"
        for item in body.get("results") or []
        if isinstance(item, dict) and not item.get("success")
    )
    return True, processed, total, failures, None


def run_distribution_once(
    settings: DistributionWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
) -> DistributionRunResult:
    payload: dict[str, int] = {}
    if settings.batch_size is not None:
        payload["batch_size"] = settings.batch_size

    request = urllib.request.Request(
        url=f"{settings.api_base_url}/api/v1/distribution/run",
        data=json.dumps(payload).encode("utf-8"),
        method="POST",
        headers={
            "Content-Type": "application/json",
            **(
                {"Authorization": f"Bearer {settings.auth_token}"}
                if settings.auth_token
                else {}
            ),
        },
    )

    try:
        with opener(request, timeout=settings.timeout_s) as response:
            raw = response.read().decode("utf-8")
            valid, processed, total, failures, error = _decode_distribution_response(raw)
            return DistributionRunResult(
                ok=valid,
                processed=processed,
                total=total,
                status_code=getattr(response, "status", 200),
                error=error,
                failures=failures,
            )
    except urllib.error.HTTPError as exc:
        return DistributionRunResult(
            ok=False,
            processed=0,
            total=0,
            status_code=exc.code,
            error=f"HTTPError: {exc.code}",
        )
    except urllib.error.URLError as exc:
        return DistributionRunResult(
            ok=False,
            processed=0,
            total=0,
            error=f"URLError: {exc.reason}",
        )
    except OSError as exc:
        # Timeouts and resets while awaiting the response are not wrapped in URLError.
        return DistributionRunResult(
            ok=False,
            processed=0,
            total=0,
            error=f"{type(exc).__name__}: {exc}",
            response_lost=True,
        )


def _is_retryable(result: DistributionRunResult) -> bool:
    if result.ok or result.response_lost:
        return False
    if result.status_code is None:
        return True
    if result.status_code in {408, 429}:
        return True
    # 409: another batch holds the lease; the next tick picks up.
    return result.status_code >= 500


def run_distribution_with_retries(
    settings: DistributionWorkerSettings,
    opener: Callable[..., object] = urllib.request.urlopen,
    sleep: Callable[[float], None] = time.sleep,
) -> DistributionRunResult:
    for attempts in range(1, settings.max_retries + 2):
        result = run_distribution_once(settings, opener=opener)
        if result.ok or not _is_retryable(result) or attempts > settings.max_retries:
            return DistributionRunResult(
                ok=result.ok,
                processed=result.processed,
                total=result.total,
                status_code=result.status_code,
                error=result.error,
                attempts=attempts,
                failures=result.failures,
                response_lost=result.response_lost,
            )

        sleep(settings.retry_backoff_s * (2 ** (attempts - 1)))

    raise RuntimeError("distribution retry loop exhausted unexpectedly")


def run_forever(settings: DistributionWorkerSettings) -> None:
    while True:
        result = run_distribution_with_retries(settings)
        if result.ok:
            logger.info(
                "distribution tick processed=%s total=%s", result.processed, result.total
            )
            for failure in result.failures:
                logger.warning("distribution order not settled: %s", failure)
        else:
            logger.error(
                "distribution tick failed status=%s error=%s attempts=%s",
                result.status_code,
                result.error,
                result.attempts,
            )
        time.sleep(settings.interval_s)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_forever(load_settings())
