"""Store interfaces the crawl depends on."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol

from pantrywatch.extractors.schemas import ProductRecord


@dataclass(frozen=True)
class UpsertResult:
    id: int
    is_new: bool


class JobStore(Protocol):
    def create_job(self) -> int: ...

    def update_job(self, job_id: int, **fields: Any) -> None: ...

    def get_latest_job(self) -> dict[str, Any] | None: ...


class ProductStore(Protocol):
    def upsert_product(self, record: ProductRecord) -> UpsertResult: ...

    def add_price_observation(
        self,
        product_id: int,
        price: float,
        price_per_unit: str | None = None,
    ) -> bool: ...

    def deactivate_unseen(self, categories: Iterable[str], before: datetime) -> int: ...

    def reconnect(self) -> None: ...

    def close(self) -> None: ...
