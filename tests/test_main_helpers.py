import pytest

from pantrywatch.config import DEFAULT_CONFIG
from pantrywatch.main import DEFAULT_INTERVAL_MINUTES, build_settings, parse_args, schedule_interval


def test_parse_args_defaults() -> None:
    args = parse_args([])
    assert args.once is False
    assert args.category is None
    assert args.region is None
    assert args.status is False


def test_category_implies_once() -> None:
    args = parse_args(["--category", "  Deli "])
    assert args.category == "Deli"
    assert args.once is True


def test_parse_args_rejects_bad_values() -> None:
    with pytest.raises(SystemExit):
        parse_args(["--max-pages", "0"])
    with pytest.raises(SystemExit):
        parse_args(["--region", "Denver"])


def test_build_settings_applies_cli_overrides() -> None:
    args = parse_args(["--region", "98101", "--max-pages", "2", "--max-products", "40"])
    settings = build_settings(args, DEFAULT_CONFIG)

    assert settings.region_code == "98101"
    assert settings.max_pages_per_category == 2
    assert settings.max_products_per_category == 40
    assert settings.batch_size == 10


def test_build_settings_without_overrides_uses_config() -> None:
    settings = build_settings(parse_args(["--once"]), DEFAULT_CONFIG)
    assert settings.region_code == "80031"
    assert settings.max_pages_per_category == 5


def test_region_is_stripped() -> None:
    assert parse_args(["--region", " 60601 "]).region == "60601"


def test_schedule_interval_falls_back_to_default() -> None:
    assert schedule_interval({"schedule": {"minutes": 90}}) == 90
    assert schedule_interval({"schedule": {"minutes": 0}}) == DEFAULT_INTERVAL_MINUTES
    assert schedule_interval({"schedule": {"minutes": "often"}}) == DEFAULT_INTERVAL_MINUTES
    assert schedule_interval({}) == DEFAULT_INTERVAL_MINUTES
