"""Named lease that serializes distribution batches across processes."""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.distribution_lease import DistributionLease
from app.observability import log_event, metrics_store
from app.services.errors import DistributionBusyError

DISTRIBUTION_LEASE_NAME = "token-distribution"


@dataclass(frozen=True)
class LeaseHandle:
    name: str
    holder: str


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _expiry(current: datetime, ttl_s: int | None) -> datetime:
    return current + timedelta(seconds=ttl_s or settings.distribution_lease_ttl_s)


def acquire_lease(
    db: Session,
    *,
    name: str = DISTRIBUTION_LEASE_NAME,
    ttl_s: int | None = None,
    now: datetime | None = None,
) -> LeaseHandle:
    current = now or datetime.now(timezone.utc)
    expires_at = _expiry(current, ttl_s)
    holder = uuid.uuid4().hex

    db.add(DistributionLease(name=name, holder=holder, expires_at=expires_at))
    try:
        db.commit()
        return LeaseHandle(name=name, holder=holder)
    except IntegrityError:
        db.rollback()

    existing = db.scalar(select(DistributionLease).where(DistributionLease.name == name))
    if existing is None:
        # Released between our insert and the lookup.
        return acquire_lease(db, name=name, ttl_s=ttl_s, now=now)
    if _as_utc(existing.expires_at) > current:
        metrics_store.increment("distribution_lease_busy_total")
        raise DistributionBusyError()

    previous_holder = existing.holder
    result = db.execute(
        update(DistributionLease)
        .where(
            DistributionLease.name == name,
            DistributionLease.holder == previous_holder,
            DistributionLease.expires_at == existing.expires_at,
        )
        .values(holder=holder, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        # Another caller took over the expired lease first.
        metrics_store.increment("distribution_lease_busy_total")
        raise DistributionBusyError()

    metrics_store.increment("distribution_lease_takeover_total")
    log_event("distribution_lease_expired_takeover", detail=f"previous_holder={previous_holder}")
    return LeaseHandle(name=name, holder=holder)


def renew_lease(
    db: Session,
    lease: LeaseHandle,
    *,
    ttl_s: int | None = None,
    now: datetime | None = None,
) -> None:
    """Push the expiry forward; raises DistributionBusyError if the lease was taken over."""
    current = now or datetime.now(timezone.utc)
    result = db.execute(
        update(DistributionLease)
        .where(DistributionLease.name == lease.name, DistributionLease.holder == lease.holder)
        .values(expires_at=_expiry(current, ttl_s))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount != 1:
        metrics_store.increment("distribution_lease_lost_total")
        raise DistributionBusyError("Distribution lease was taken over by another batch")


def release_lease(db: Session, lease: LeaseHandle) -> None:
    db.rollback()
    db.execute(
        delete(DistributionLease).where(
            DistributionLease.name == lease.name,
            DistributionLease.holder == lease.holder,
        )
    )
    db.commit()


@contextmanager
def distribution_lease(db: Session, *, name: str = DISTRIBUTION_LEASE_NAME) -> Iterator[LeaseHandle]:
    lease = acquire_lease(db, name=name)
    try:
        yield lease
    finally:
        release_lease(db, lease)
