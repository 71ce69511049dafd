"""Configuration management using Pydantic Settings."""

import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Literal

import yaml
from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wagerbot.exceptions import ConfigInvalidError
from wagerbot.services.prices.config import PriceOracleConfig, PriceSafetyConfig
from wagerbot.services.wallets.config import WalletConfig

logger = logging.getLogger(__name__)


class BettingLimits(BaseModel):
    """USD range of opponent bets the sniper accepts."""

    min: Decimal = Decimal("2")
    max: Decimal = Decimal("50")


class ChannelsConfig(BaseModel):
    vouch_channel_id: str = ""


class PaymentSafetyConfig(BaseModel):
    """Admission limits for outgoing payments."""

    max_payment_per_tx: Decimal = Decimal("100")
    max_daily_usd: Decimal = Decimal("500")
    address_allowlist: list[str] = Field(default_factory=list)
    price_safety: PriceSafetyConfig = Field(default_factory=PriceSafetyConfig)


class ResponseTemplates(BaseModel):
    """Outbound message templates."""

    bet_offer: str = "vs my {calculated} I win ties (your {base})"
    payment_sent: str = "Sent ${amount}. TX: {txid}"
    vouch_win: str = "+rep {opponent} won ${amount} dice vs them, mm {middleman}"


class GameSettings(BaseModel):
    """Dice game rules."""

    wins_to_complete: int = 5
    bot_wins_ties: bool = True
    dice_command: str = ""
    require_payout_confirmation: bool = True


class SchedulerConfig(BaseModel):
    """Timer intervals."""

    payout_check_seconds: int = 15
    stale_sweep_minutes: int = 5
    pending_wager_sweep_minutes: int = 30
    autosave_seconds: int = 30


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Secrets and switches (environment only)
    discord_token: str = ""
    enable_live_transfers: str = ""
    ltc_private_key: str = ""
    btc_private_key: str = ""
    sol_private_key: str = ""
    ltc_payout_address: str = ""
    btc_payout_address: str = ""
    sol_payout_address: str = ""
    vouch_channel_id: str = ""
    blockcypher_token: str = ""
    logfire_token: str = ""

    # Operational parameters (data/config.yaml)
    crypto_network: Literal["LTC", "SOL", "BTC"] = "LTC"
    simulation_mode: bool = False
    tax_percentage: Decimal = Decimal("0.15")
    betting_limits: BettingLimits = Field(default_factory=BettingLimits)
    middleman_ids: list[str] = Field(default_factory=list)
    monitored_channels: list[str] = Field(default_factory=list)
    dice_bot_ids: list[str] = Field(default_factory=list)
    cancellation_keywords: list[str] = Field(
        default_factory=lambda: ["void", "cancel", "refund"]
    )
    ticket_channel_keywords: list[str] = Field(
        default_factory=lambda: ["ticket", "order", "wager", "bet"]
    )
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    payment_safety: PaymentSafetyConfig = Field(default_factory=PaymentSafetyConfig)
    payout_addresses: dict[str, str] = Field(default_factory=dict)
    response_templates: ResponseTemplates = Field(default_factory=ResponseTemplates)
    game_settings: GameSettings = Field(default_factory=GameSettings)
    bet_cooldown_ms: int = 60_000
    channel_send_gap_ms: int = 2_500
    pending_wager_ttl_ms: int = 300_000
    payout_tolerance_pct: Decimal = Decimal("5")

    # Nested service sections
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    prices: PriceOracleConfig = Field(default_factory=PriceOracleConfig)
    wallets: WalletConfig = Field(default_factory=WalletConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    YAML_KEYS: ClassVar[tuple[str, ...]] = (
        "crypto_network",
        "simulation_mode",
        "tax_percentage",
        "betting_limits",
        "middleman_ids",
        "monitored_channels",
        "dice_bot_ids",
        "cancellation_keywords",
        "ticket_channel_keywords",
        "channels",
        "payment_safety",
        "payout_addresses",
        "response_templates",
        "game_settings",
        "bet_cooldown_ms",
        "channel_send_gap_ms",
        "pending_wager_ttl_ms",
        "payout_tolerance_pct",
        "scheduler",
        "prices",
        "wallets",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @field_validator("middleman_ids", "monitored_channels", "dice_bot_ids", mode="before")
    @classmethod
    def stringify_ids(cls, v: Any) -> Any:
        """Chat ids in YAML are often written as bare integers."""
        return _stringify_ids(v)

    @property
    def live_transfers_enabled(self) -> bool:
        return self.enable_live_transfers == "true"

    @property
    def config_path(self) -> Path:
        return self.data_dir / "config.yaml"

    @property
    def state_path(self) -> Path:
        return self.data_dir / "state.json"

    @property
    def ledger_path(self) -> Path:
        return self.data_dir / "idempotency.json"

    def payout_address(self, network: str | None = None) -> str:
        return self.payout_addresses.get(network or self.crypto_network, "")

    def private_key(self, network: str | None = None) -> str:
        return {
            "LTC": self.ltc_private_key,
            "BTC": self.btc_private_key,
            "SOL": self.sol_private_key,
        }.get(network or self.crypto_network, "")

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.config_path

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise ConfigInvalidError(f"Malformed config file {config_path}: {e}")

        if not yaml_config:
            logger.warning(f"Empty config file: {config_path}")
            return
        if not isinstance(yaml_config, dict):
            raise ConfigInvalidError(f"Config file {config_path} must contain a mapping")

        for key, value in yaml_config.items():
            if key not in self.YAML_KEYS:
                logger.debug(f"Ignoring unrecognised config key: {key}")
                continue
            try:
                self._merge_value(key, value)
            except ValidationError as e:
                raise ConfigInvalidError(f"Invalid value for '{key}': {e}")

        logger.info(f"Loaded configuration from {config_path}")

    def _merge_value(self, key: str, value: Any) -> None:
        current = getattr(self, key)
        if isinstance(current, BaseModel) and isinstance(value, dict):
            merged = _deep_merge(current.model_dump(), value)
            setattr(self, key, current.__class__(**merged))
            return

        if key in ("middleman_ids", "monitored_channels", "dice_bot_ids"):
            value = _stringify_ids(value)
        annotation = type(self).model_fields[key].annotation
        setattr(self, key, TypeAdapter(annotation).validate_python(value))

    def apply_env_overrides(self) -> None:
        """Environment payout addresses and vouch channel win over YAML."""
        for network, address in (
            ("LTC", self.ltc_payout_address),
            ("SOL", self.sol_payout_address),
            ("BTC", self.btc_payout_address),
        ):
            if address:
                self.payout_addresses[network] = address

        if self.vouch_channel_id:
            self.channels = ChannelsConfig(vouch_channel_id=self.vouch_channel_id)

        if self.blockcypher_token:
            self.wallets = self.wallets.model_copy(
                update={"blockcypher_token": self.blockcypher_token}
            )

    def validate_settings(self) -> None:
        """Raise ConfigInvalidError when settings are unusable."""
        errors: list[str] = []
        limits = self.betting_limits

        if limits.min <= 0:
            errors.append("betting_limits.min must be positive")
        if limits.min > limits.max:
            errors.append("betting_limits.min must not exceed betting_limits.max")
        if self.tax_percentage < 0:
            errors.append("tax_percentage must not be negative")
        if self.payment_safety.max_payment_per_tx <= 0:
            errors.append("payment_safety.max_payment_per_tx must be positive")
        if self.payment_safety.max_daily_usd <= 0:
            errors.append("payment_safety.max_daily_usd must be positive")
        if self.game_settings.wins_to_complete < 1:
            errors.append("game_settings.wins_to_complete must be at least 1")
        if self.channel_send_gap_ms < 0:
            errors.append("channel_send_gap_ms must not be negative")
        if not (0 <= self.payout_tolerance_pct < 100):
            errors.append("payout_tolerance_pct must be within [0, 100)")

        if errors:
            raise ConfigInvalidError("; ".join(errors))


def _stringify_ids(v: Any) -> Any:
    if isinstance(v, list):
        return [str(item) for item in v]
    return v


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    settings.apply_env_overrides()
    return settings
