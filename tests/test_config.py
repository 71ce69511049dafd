"""Tests for settings loading: YAML merge, environment overrides and validation."""

from decimal import Decimal
from pathlib import Path

import pytest

from conftest import OWN_LTC

from wagerbot.config import Settings, get_settings
from wagerbot.exceptions import ConfigInvalidError

SHIPPED_DATA_DIR = Path(__file__).parent.parent / "data"


def settings_with_yaml(tmp_path: Path, text: str | None = None, **values) -> Settings:
    if text is not None:
        (tmp_path / "config.yaml").write_text(text, encoding="utf-8")
    settings = Settings(_env_file=None, data_dir=tmp_path, **values)
    settings.load_yaml_config()
    return settings


def test_defaults_without_config_file(tmp_path: Path) -> None:
    settings = settings_with_yaml(tmp_path)

    assert settings.data_dir == tmp_path.resolve()
    assert settings.crypto_network == "LTC"
    assert settings.tax_percentage == Decimal("0.15")
    assert settings.game_settings.wins_to_complete == 5
    assert settings.payout_tolerance_pct == Decimal("5")
    assert settings.state_path == tmp_path.resolve() / "state.json"
    assert settings.ledger_path == tmp_path.resolve() / "idempotency.json"
    settings.validate_settings()


def test_shipped_config_loads() -> None:
    settings = Settings(_env_file=None, data_dir=SHIPPED_DATA_DIR)
    settings.load_yaml_config()

    assert settings.simulation_mode
    assert settings.payment_safety.price_safety.max_deviation_percentage == 25
    settings.validate_settings()


def test_yaml_sections_merge_into_defaults(tmp_path: Path) -> None:
    settings = settings_with_yaml(
        tmp_path,
        "payment_safety:\n"
        "  max_daily_usd: 200\n"
        "game_settings:\n"
        "  wins_to_complete: 3\n"
        "middleman_ids: [123, '456']\n"
        "mystery_option: true\n",
    )

    assert settings.payment_safety.max_daily_usd == Decimal("200")
    assert settings.payment_safety.max_payment_per_tx == Decimal("100")
    assert settings.game_settings.wins_to_complete == 3
    assert settings.game_settings.bot_wins_ties
    assert settings.middleman_ids == ["123", "456"]


def test_empty_config_file_keeps_defaults(tmp_path: Path) -> None:
    settings = settings_with_yaml(tmp_path, "")
    assert settings.betting_limits.max == Decimal("50")


@pytest.mark.parametrize(
    "text",
    [
        "betting_limits: [unclosed\n",
        "- just\n- a list\n",
        "bet_cooldown_ms: soon\n",
        "betting_limits:\n  min: lots\n",
    ],
)
def test_unusable_config_is_rejected(tmp_path: Path, text: str) -> None:
    with pytest.raises(ConfigInvalidError):
        settings_with_yaml(tmp_path, text)


def test_environment_wins_over_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LTC_PAYOUT_ADDRESS", OWN_LTC)
    monkeypatch.setenv("VOUCH_CHANNEL_ID", "424242")
    monkeypatch.setenv("BLOCKCYPHER_TOKEN", "bc-token")

    settings = settings_with_yaml(
        tmp_path,
        "payout_addresses:\n"
        "  LTC: LY7VX5yZgVbEsL3kS9F2a8B4c5D6e7F8g9\n"
        "channels:\n"
        "  vouch_channel_id: '1'\n",
    )
    settings.apply_env_overrides()

    assert settings.payout_address() == OWN_LTC
    assert settings.payout_address("SOL") == ""
    assert settings.channels.vouch_channel_id == "424242"
    assert settings.wallets.blockcypher_token == "bc-token"


def test_private_keys_come_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOL_PRIVATE_KEY", "sol-secret")
    settings = Settings(_env_file=None)

    assert settings.private_key("SOL") == "sol-secret"
    assert settings.private_key("LTC") == ""


@pytest.mark.parametrize(
    ("value", "enabled"),
    [("true", True), ("TRUE", False), ("1", False), ("yes", False), ("", False)],
)
def test_live_transfers_need_exact_opt_in(value: str, enabled: bool) -> None:
    assert Settings(_env_file=None, enable_live_transfers=value).live_transfers_enabled is enabled


def test_validation_collects_every_problem(tmp_path: Path) -> None:
    settings = settings_with_yaml(
        tmp_path,
        "betting_limits:\n"
        "  min: 60\n"
        "  max: 50\n"
        "payout_tolerance_pct: 100\n"
        "game_settings:\n"
        "  wins_to_complete: 0\n",
    )

    with pytest.raises(ConfigInvalidError) as excinfo:
        settings.validate_settings()

    message = excinfo.value.message
    assert "betting_limits.min must not exceed betting_limits.max" in message
    assert "payout_tolerance_pct" in message
    assert "wins_to_complete" in message


def test_get_settings_is_cached(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings is get_settings()
        assert settings.data_dir == (tmp_path / "data").resolve()
    finally:
        get_settings.cache_clear()
