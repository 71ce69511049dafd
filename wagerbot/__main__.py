"""Wagerbot CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import discord
from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from wagerbot import __version__
from wagerbot.config import get_settings
from wagerbot.exceptions import ConfigInvalidError, PersistenceFailureError
from wagerbot.networks import NETWORKS
from wagerbot.runtime import run_bot
from wagerbot.storage import IdempotencyLedger, read_json

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Wagerbot Configuration
# Operational parameters only. Tokens and private keys belong in .env.

crypto_network: LTC
simulation_mode: true
tax_percentage: 0.15

betting_limits:
  min: 2
  max: 50

middleman_ids: []
monitored_channels: []
dice_bot_ids: []

channels:
  vouch_channel_id: ""

payment_safety:
  max_payment_per_tx: 100
  max_daily_usd: 500
  address_allowlist: []
  price_safety:
    max_deviation_percentage: 25

payout_addresses: {}

game_settings:
  wins_to_complete: 5
  bot_wins_ties: true
  require_payout_confirmation: true

bet_cooldown_ms: 60000
channel_send_gap_ms: 2500
pending_wager_ttl_ms: 300000
payout_tolerance_pct: 5

scheduler:
  payout_check_seconds: 15
  stale_sweep_minutes: 5
  pending_wager_sweep_minutes: 30
  autosave_seconds: 30
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from wagerbot.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _mask(value: str) -> str:
    return "✓ Set" if value else "✗ Not set"


def cmd_init(args: argparse.Namespace) -> int:
    """Create the data directory and a configuration template."""
    data_dir = Path("data").resolve()

    try:
        data_dir.mkdir(exist_ok=True)
        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Put DISCORD_TOKEN and the wallet keys in .env")
        print("2. Add middleman_ids and payout_addresses to data/config.yaml")
        print("3. Run 'python -m wagerbot config' to verify configuration")
        print("4. Run 'python -m wagerbot run' to start the bot\n")
        return 0

    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()
        settings.validate_settings()
    except ConfigInvalidError as e:
        print(f"\n❌ Configuration Error:\n\n  • {e.message}\n")
        return 1
    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1

    print("\n=== Wagerbot Configuration ===\n")
    print(f"Data Directory: {settings.data_dir}\n")

    print("Mode:")
    print(f"  Network: {settings.crypto_network}")
    print(f"  Simulation: {settings.simulation_mode}")
    print(f"  Live Transfers: {settings.live_transfers_enabled}\n")

    print("Betting:")
    print(f"  Limits: ${settings.betting_limits.min} - ${settings.betting_limits.max}")
    print(f"  Tax: {settings.tax_percentage:.0%}")
    print(f"  Cooldown: {settings.bet_cooldown_ms} ms")
    print(f"  Middlemen: {len(settings.middleman_ids)}")
    print(f"  Monitored Channels: {len(settings.monitored_channels) or 'all'}\n")

    safety = settings.payment_safety
    print("Payment Safety:")
    print(f"  Max Per Transaction: ${safety.max_payment_per_tx}")
    print(f"  Max Daily: ${safety.max_daily_usd}")
    print(f"  Allowlist: {len(safety.address_allowlist) or 'disabled'}")
    print(f"  Max Price Deviation: {safety.price_safety.max_deviation_percentage}%\n")

    print("Game:")
    print(f"  Wins To Complete: {settings.game_settings.wins_to_complete}")
    print(f"  Bot Wins Ties: {settings.game_settings.bot_wins_ties}")
    print(f"  Payout Tolerance: {settings.payout_tolerance_pct}%\n")

    print("Payout Addresses:")
    for network in NETWORKS:
        print(f"  {network}: {settings.payout_address(network) or '✗ Not set'}")
    print()

    print("Secrets:")
    print(f"  Discord: {_mask(settings.discord_token)}")
    for network in NETWORKS:
        print(f"  {network} Private Key: {_mask(settings.private_key(network))}")
    print(f"  BlockCypher: {_mask(settings.blockcypher_token)}")
    print(f"  Logfire: {_mask(settings.logfire_token)}\n")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Summarize persisted tickets and payments without connecting."""
    try:
        settings = get_settings()
        state = read_json(settings.state_path)
        ledger = IdempotencyLedger(settings.ledger_path)
        ledger.load()
    except (ConfigInvalidError, PersistenceFailureError) as e:
        print(f"\n❌ Failed to read status: {e.message}\n")
        return 1

    print("\n=== Wagerbot Status ===\n")
    if state is None:
        print(f"No state file at {settings.state_path}\n")
    else:
        tickets = state.get("tickets", [])
        print(f"Saved At: {state.get('savedAt')}")
        print(f"Tickets: {len(tickets)}")
        for ticket in tickets[:10]:
            print(f"  • {ticket.get('channelId')}: {ticket.get('state')}")
        if len(tickets) > 10:
            print(f"  ... and {len(tickets) - 10} more")
        print(f"Pending Wagers: {len(state.get('pendingWagers', []))}\n")

    counts = ledger.reconcile()
    print("Payments:")
    print(f"  Records: {len(ledger.records())}")
    print(f"  Pending: {counts['pending']}")
    print(f"  Broadcast (needs review): {counts['broadcast']}")
    print(f"  Spent Today: ${ledger.daily_spend()}\n")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Start the bot."""
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = get_settings()
        settings.validate_settings()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"\n❌ Configuration Error: {e}\n")
        return 1
    except ConfigInvalidError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"\n❌ Configuration Error: {e.message}\n")
        return 1

    _init_logfire()

    print("\n=== Wagerbot ===\n")
    print(f"Version: {__version__}")
    if settings.simulation_mode:
        mode = "SIMULATION"
    elif settings.live_transfers_enabled:
        mode = "LIVE TRANSFERS"
    else:
        mode = "DRY RUN"
    print(f"Mode: {mode}")
    print(f"Network: {settings.crypto_network}")
    print(f"Data Directory: {settings.data_dir}\n")

    try:
        asyncio.run(run_bot(settings))
        return 0
    except ConfigInvalidError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"\n❌ Configuration Error: {e.message}\n")
        return 1
    except discord.LoginFailure as e:
        logger.error(f"Discord login failed: {e}")
        print(f"\n❌ Login failed: {e}\n")
        return 1
    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Wagerbot: autonomous dice wager agent for chat-brokered tickets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Wagerbot {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory and configuration template",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_status = subparsers.add_parser(
        "status",
        help="Summarize persisted tickets and payments",
    )
    parser_status.set_defaults(func=cmd_status)

    parser_run = subparsers.add_parser(
        "run",
        help="Connect to Discord and start the bot",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
