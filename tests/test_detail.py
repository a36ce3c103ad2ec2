import asyncio

from fakes import FAST_SETTINGS, ORIGIN, FakeSession, payload, product_url

from pantrywatch.retailers.detail import DetailExtractor, product_id_from_url, record_from_payload


def test_record_from_payload_maps_fields() -> None:
    record = record_from_payload(
        {
            "pid": "100512345",
            "name": "  Kirkland Signature Butter, 4 x 1 lb  ",
            "priceMin": "12.99",
            "priceMax": "14.99",
            "itemNumber": "512345",
            "inventoryStatus": "InStock",
            "membershipReq": "member-only",
        },
        f"{ORIGIN}/butter.product.100512345.html",
        "Dairy & Eggs",
    )

    assert record is not None
    assert record.external_id == "100512345"
    assert record.name == "Kirkland Signature Butter, 4 x 1 lb"
    assert record.price == 12.99
    assert record.sku == "512345"
    assert record.inventory_status == "In Stock"
    assert record.membership_required is True
    assert record.category == "Dairy & Eggs"


def test_record_from_payload_falls_back_to_max_price_and_id() -> None:
    record = record_from_payload(
        {"id": 77, "name": "Eggs", "priceMin": 0, "priceMax": 5.5, "sku": "E-1"},
        product_url(1),
        "Dairy & Eggs",
    )

    assert record is not None
    assert record.external_id == "77"
    assert record.price == 5.5
    assert record.sku == "E-1"
    assert record.membership_required is False


def test_record_from_payload_uses_url_id_when_payload_has_none() -> None:
    record = record_from_payload({"name": "Bagels", "priceMin": 8}, product_url(4), "Breads & Bakery")

    assert record is not None
    assert record.external_id == "1004"


def test_record_from_payload_rejects_incomplete_data() -> None:
    url = product_url(1)
    assert record_from_payload(None, url, "Deli") is None
    assert record_from_payload({}, url, "Deli") is None
    assert record_from_payload({"pid": "1", "name": "", "priceMin": 3}, url, "Deli") is None
    assert record_from_payload({"pid": "1", "name": "Ham", "priceMin": 0}, url, "Deli") is None
    assert record_from_payload({"pid": "1", "name": "Ham", "priceMin": "-2"}, url, "Deli") is None
    assert record_from_payload({"name": "Ham", "priceMin": 3}, f"{ORIGIN}/ham.html", "Deli") is None


def test_product_id_from_url() -> None:
    assert product_id_from_url(f"{ORIGIN}/ham.product.100123.html") == "100123"
    assert product_id_from_url(f"{ORIGIN}/ham.html") is None


def test_extract_reads_embedded_payload() -> None:
    url = product_url(3)
    session = FakeSession(products={url: payload(3, price=4.25)})
    extractor = DetailExtractor(FAST_SETTINGS)

    record = asyncio.run(extractor.extract(session, url, "Deli"))

    assert record is not None
    assert record.external_id == "1003"
    assert record.price == 4.25
    assert record.url == url
    assert extractor.navigation_failures == 0


def test_extract_without_payload_is_no_data() -> None:
    url = product_url(3)
    session = FakeSession(products={url: None})

    assert asyncio.run(DetailExtractor(FAST_SETTINGS).extract(session, url, "Deli")) is None
    assert session.reloads == 0


def test_navigation_failure_reloads_and_returns_none() -> None:
    url = product_url(3)
    session = FakeSession(products={url: payload(3)}, failing_urls=[url])
    extractor = DetailExtractor(FAST_SETTINGS)

    assert asyncio.run(extractor.extract(session, url, "Deli")) is None
    assert session.reloads == 1
    assert extractor.navigation_failures == 1


def test_failed_reload_is_tolerated() -> None:
    url = product_url(3)
    session = FakeSession(failing_urls=[url], reload_fails=True)
    extractor = DetailExtractor(FAST_SETTINGS)

    assert asyncio.run(extractor.extract(session, url, "Deli")) is None
    assert session.reloads == 1


def test_non_object_product_data_is_skipped() -> None:
    assert record_from_payload("Kirkland Signature", product_url(1), "Deli") is None
    assert record_from_payload([["nested"]], product_url(1), "Deli") is None

    session = FakeSession(products={product_url(1): "Kirkland Signature", product_url(2): [1, 2]})
    extractor = DetailExtractor(FAST_SETTINGS)

    assert asyncio.run(extractor.extract(session, product_url(1), "Deli")) is None
    assert asyncio.run(extractor.extract(session, product_url(2), "Deli")) is None
    assert extractor.navigation_failures == 0
