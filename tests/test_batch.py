import pytest
from fakes import FakeStore, product_url

from pantrywatch.extractors.schemas import ProductRecord
from pantrywatch.storage.batch import BatchPersister, BatchResult


def _record(index: int, *, price: float = 9.99) -> ProductRecord:
    return ProductRecord(
        external_id=str(1000 + index),
        name=f"Item {index}",
        url=product_url(index),
        category="Deli",
        price=price,
    )


def test_add_flushes_at_cap() -> None:
    store = FakeStore()
    persister = BatchPersister(store, batch_size=10)

    results = [persister.add(_record(i)) for i in range(25)]
    flushed = [result for result in results if result is not None]
    final = persister.flush()

    assert len(flushed) == 2
    assert all(result.added == 10 for result in flushed)
    assert final.added == 5
    assert len(persister) == 0
    assert len(store.upserts) == 25


def test_flush_on_empty_buffer_is_a_no_op() -> None:
    store = FakeStore()
    assert BatchPersister(store).flush() == BatchResult()
    assert store.upserts == []


def test_existing_products_count_as_updated() -> None:
    store = FakeStore()
    persister = BatchPersister(store, batch_size=10)

    first = persister.persist([_record(1), _record(2)])
    second = persister.persist([_record(1, price=10.49), _record(2)])

    assert (first.added, first.updated, first.prices_recorded) == (2, 0, 2)
    assert (second.added, second.updated, second.prices_recorded) == (0, 2, 1)


def test_write_error_is_counted_once_and_not_retried() -> None:
    store = FakeStore(failing_ids={"1003"})
    persister = BatchPersister(store, batch_size=5)

    for index in range(5):
        result = persister.add(_record(index))

    assert result is not None
    assert (result.added, result.errors) == (4, 1)
    assert store.upserts.count("1003") == 1
    assert persister.flush() == BatchResult()
    assert store.upserts.count("1003") == 1
    assert store.reconnect_count == 0


def test_connection_error_triggers_one_reconnect() -> None:
    store = FakeStore(disconnecting_ids={"1001"})
    persister = BatchPersister(store)

    result = persister.persist([_record(0), _record(1), _record(2)])

    assert (result.added, result.errors) == (2, 1)
    assert store.reconnect_count == 1


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        BatchPersister(FakeStore(), batch_size=0)


def test_batch_results_accumulate() -> None:
    total = BatchResult()
    total += BatchResult(added=2, updated=1, errors=1, prices_recorded=3)
    total += BatchResult(added=1, updated=4)

    assert total == BatchResult(added=3, updated=5, errors=1, prices_recorded=3)
    assert total.saved == 8
