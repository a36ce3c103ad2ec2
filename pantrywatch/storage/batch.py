"""Buffered product persistence."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from pantrywatch.errors import PersistenceConnectionError
from pantrywatch.extractors.schemas import ProductRecord
from pantrywatch.logging_config import get_logger

from .base import ProductStore
from .db import is_connection_error

LOGGER = get_logger(__name__)


@dataclass
class BatchResult:
    added: int = 0
    updated: int = 0
    errors: int = 0
    prices_recorded: int = 0

    @property
    def saved(self) -> int:
        return self.added + self.updated

    def __iadd__(self, other: "BatchResult") -> "BatchResult":
        self.added += other.added
        self.updated += other.updated
        self.errors += other.errors
        self.prices_recorded += other.prices_recorded
        return self


class BatchPersister:
    """Buffer validated records and write them through a product store.

    The buffer is cleared before each write, so a batch is submitted once even
    when individual records fail.
    """

    def __init__(self, store: ProductStore, *, batch_size: int = 10) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.store = store
        self.batch_size = batch_size
        self.buffer: list[ProductRecord] = []

    def __len__(self) -> int:
        return len(self.buffer)

    def add(self, record: ProductRecord) -> BatchResult | None:
        """Buffer *record*; returns the batch result when the cap triggered a flush."""

        self.buffer.append(record)
        if len(self.buffer) >= self.batch_size:
            return self.flush()
        return None

    def flush(self) -> BatchResult:
        if not self.buffer:
            return BatchResult()
        pending = self.buffer
        self.buffer = []
        LOGGER.info("Saving batch of %d products", len(pending))
        return self.persist(pending)

    def persist(self, records: Iterable[ProductRecord]) -> BatchResult:
        result = BatchResult()
        for record in records:
            try:
                upserted = self.store.upsert_product(record)
                if upserted.is_new:
                    result.added += 1
                else:
                    result.updated += 1
                if self.store.add_price_observation(upserted.id, record.price, record.price_per_unit):
                    result.prices_recorded += 1
            except Exception as exc:
                result.errors += 1
                LOGGER.error(
                    "Error saving product %s: %s",
                    record.name,
                    exc,
                    extra={"category": record.category, "url": record.url},
                )
                if isinstance(exc, PersistenceConnectionError) or is_connection_error(exc):
                    self._reconnect()

        LOGGER.info(
            "Products saved: %d added, %d updated, %d errors",
            result.added,
            result.updated,
            result.errors,
        )
        return result

    def _reconnect(self) -> None:
        LOGGER.info("Attempting to reconnect database")
        try:
            self.store.reconnect()
        except Exception as exc:
            LOGGER.error("Failed to reconnect database: %s", exc)
