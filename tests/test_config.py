import pytest

from cartscout.config import DEFAULT_CONFIG, bounds, deep_merge, load_config
from cartscout.main import apply_cli_overrides, parse_args


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("CARTSCOUT_DATABASE_URL", "CARTSCOUT_LISTING_URL", "CARTSCOUT_COOKIES_DIR", "CARTSCOUT_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_bundled_config_matches_defaults() -> None:
    assert load_config() == DEFAULT_CONFIG


def test_yaml_values_merge_over_defaults(tmp_path) -> None:
    path = tmp_path / "config.yml"
    path.write_text("listing:\n  layout: vertical-4\npricing:\n  margin: 0.2\n", encoding="utf-8")

    config = load_config(path)

    assert config["listing"]["layout"] == "vertical-4"
    assert config["listing"]["product_limit"] == 45
    assert config["pricing"]["margin"] == 0.2
    assert config["pricing"]["exchange_rate"] == 200


def test_environment_overrides(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("CARTSCOUT_DATABASE_URL", "sqlite:///other.sqlite")
    monkeypatch.setenv("CARTSCOUT_COOKIES_DIR", str(tmp_path))
    config = load_config(tmp_path / "absent.yml")
    assert config["output"]["database_url"] == "sqlite:///other.sqlite"
    assert config["credentials"]["directory"] == str(tmp_path)


@pytest.mark.parametrize(
    "body",
    [
        "listing:\n  layout: carousel\n",
        "pricing:\n  denomination: 0\n",
        "logging:\n  level: chatty\n",
        "- not a mapping\n",
    ],
)
def test_invalid_configuration_is_rejected(tmp_path, body: str) -> None:
    path = tmp_path / "config.yml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(RuntimeError):
        load_config(path)


def test_deep_merge_does_not_mutate_inputs() -> None:
    base = {"a": {"b": 1, "c": 2}}
    merged = deep_merge(base, {"a": {"b": 3}})
    assert merged == {"a": {"b": 3, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


def test_bounds() -> None:
    assert bounds([5, 10], (1, 2)) == (5, 10)
    assert bounds([10, 5], (1, 2)) == (10, 10)
    assert bounds([-3, 4], (1, 2)) == (0, 4)
    assert bounds(None, (1, 2)) == (1, 2)
    assert bounds(["x", 1], (1, 2)) == (1, 2)


def test_cli_flags_override_listing_settings() -> None:
    args = parse_args(["--url", "https://example.com/list", "--layout", "vertical-4", "--limit", "3"])
    config = apply_cli_overrides(load_config(), args)
    assert config["listing"] == {"url": "https://example.com/list", "layout": "vertical-4", "product_limit": 3}
    assert args.reprice is False


def test_cli_rejects_negative_limit() -> None:
    with pytest.raises(SystemExit):
        parse_args(["--limit", "-1"])
