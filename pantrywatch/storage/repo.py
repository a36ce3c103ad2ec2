"""Repository helpers for interacting with persistent storage."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pantrywatch.extractors.schemas import ProductRecord

from .models_sql import CrawlJob, PriceHistory, Product

JOB_STARTED = "started"
JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

TERMINAL_STATUSES = frozenset({JOB_COMPLETED, JOB_FAILED})
_STATUS_RANK = {JOB_STARTED: 0, JOB_PROCESSING: 1, JOB_COMPLETED: 2, JOB_FAILED: 2}

JOB_FIELDS = frozenset(
    {
        "status",
        "products_scraped",
        "products_added",
        "products_updated",
        "products_deactivated",
        "error_message",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def upsert_product(
    session: Session,
    record: ProductRecord,
    *,
    seen_at: datetime | None = None,
) -> tuple[Product, bool]:
    """Insert or refresh the product keyed by ``external_id``.

    Returns the row and whether it was newly created.  Re-seeing a product
    reactivates it and moves ``last_seen_date`` forward.
    """

    seen_at = seen_at or _utcnow()
    stmt = select(Product).where(Product.external_id == record.external_id)
    product = session.execute(stmt).scalar_one_or_none()
    is_new = product is None
    if product is None:
        product = Product(
            external_id=record.external_id,
            first_seen_date=seen_at,
            created_at=seen_at,
        )
        session.add(product)

    product.name = record.name
    product.url = record.url
    product.category = record.category
    product.sku = record.sku
    product.inventory_status = record.inventory_status
    product.membership_required = record.membership_required
    product.is_active = True
    product.last_seen_date = seen_at
    product.updated_at = seen_at
    session.flush()
    return product, is_new


def get_latest_price(session: Session, product_id: int) -> PriceHistory | None:
    stmt = (
        select(PriceHistory)
        .where(PriceHistory.product_id == product_id)
        .order_by(PriceHistory.scraped_at.desc(), PriceHistory.id.desc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def add_price_observation(
    session: Session,
    product_id: int,
    price: float,
    *,
    price_per_unit: str | None = None,
    scraped_at: datetime | None = None,
) -> bool:
    """Append a price observation unless it repeats the latest stored price."""

    latest = get_latest_price(session, product_id)
    if latest is not None and round(latest.price, 2) == round(float(price), 2):
        return False

    session.add(
        PriceHistory(
            product_id=product_id,
            price=float(price),
            price_per_unit=price_per_unit,
            scraped_at=scraped_at or _utcnow(),
        )
    )
    session.flush()
    return True


def price_history(session: Session, product_id: int) -> list[PriceHistory]:
    stmt = (
        select(PriceHistory)
        .where(PriceHistory.product_id == product_id)
        .order_by(PriceHistory.scraped_at.asc(), PriceHistory.id.asc())
    )
    return list(session.execute(stmt).scalars())


def deactivate_unseen(
    session: Session,
    categories: Iterable[str],
    before: datetime,
) -> int:
    """Mark active products of *categories* not seen since *before* inactive."""

    names = sorted({name for name in categories if name})
    if not names:
        return 0
    stmt = (
        update(Product)
        .where(
            Product.is_active.is_(True),
            Product.category.in_(names),
            Product.last_seen_date < before,
        )
        .values(is_active=False, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    return int(result.rowcount or 0)


def create_job(session: Session, *, started_at: datetime | None = None) -> CrawlJob:
    job = CrawlJob(status=JOB_STARTED, started_at=started_at or _utcnow())
    session.add(job)
    session.flush()
    return job


def update_job(session: Session, job_id: int, **fields: Any) -> CrawlJob:
    """Apply *fields* to the job, enforcing monotonic status transitions.

    A terminal job (completed or failed) is never modified again.
    """

    unknown = set(fields) - JOB_FIELDS
    if unknown:
        raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")

    job = session.get(CrawlJob, job_id)
    if job is None:
        raise LookupError(f"Job {job_id} does not exist")
    if job.status in TERMINAL_STATUSES:
        raise ValueError(f"Job {job_id} is already {job.status}")

    status = fields.get("status")
    if status is not None:
        if status not in _STATUS_RANK:
            raise ValueError(f"Unknown job status {status!r}")
        if _STATUS_RANK[status] < _STATUS_RANK[job.status]:
            raise ValueError(f"Job {job_id} cannot move from {job.status} to {status}")

    for key, value in fields.items():
        setattr(job, key, value)
    if status in TERMINAL_STATUSES:
        job.completed_at = _utcnow()
    session.flush()
    return job


def get_latest_job(session: Session) -> CrawlJob | None:
    stmt = select(CrawlJob).order_by(CrawlJob.started_at.desc(), CrawlJob.id.desc()).limit(1)
    return session.execute(stmt).scalar_one_or_none()


def job_as_dict(job: CrawlJob) -> dict[str, Any]:
    return {
        "id": job.id,
        "status": job.status,
        "products_scraped": job.products_scraped,
        "products_added": job.products_added,
        "products_updated": job.products_updated,
        "products_deactivated": job.products_deactivated,
        "error_message": job.error_message,
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
    }
