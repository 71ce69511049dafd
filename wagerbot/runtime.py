"""Service assembly and process lifecycle."""

import logging

from wagerbot.bot import (
    ChannelOutbox,
    ChatTransport,
    MessageRouter,
    PayoutMonitor,
    Sniper,
    TicketHandler,
)
from wagerbot.config import Settings
from wagerbot.payments import PaymentGate
from wagerbot.scheduler import build_scheduler
from wagerbot.services.discord import DiscordChatClient
from wagerbot.services.prices import PriceOracle
from wagerbot.services.wallets import Wallet, create_wallet
from wagerbot.storage import IdempotencyLedger, PersistenceManager
from wagerbot.tickets import TicketRegistry

logger = logging.getLogger(__name__)


class Runtime:
    """Every process-wide service, built in dependency order.

    config -> ledger -> registry -> persistence (load + reconcile)
    -> wallet/oracle -> gate -> handlers -> router
    """

    def __init__(
        self,
        settings: Settings,
        transport: ChatTransport,
        wallet: Wallet,
        oracle: PriceOracle,
    ):
        self.settings = settings
        self.transport = transport

        self.ledger = IdempotencyLedger(settings.ledger_path)
        self.ledger.load()

        self.registry = TicketRegistry(
            pending_wager_ttl_ms=settings.pending_wager_ttl_ms,
            cooldown_ms=settings.bet_cooldown_ms,
        )
        self.persistence = PersistenceManager(settings.state_path, self.registry, self.ledger)
        self.persistence.load()
        self.registry.set_change_listener(self.persistence.request_save)

        self.wallet = wallet
        self.oracle = oracle
        self.gate = PaymentGate.from_settings(settings, self.ledger, oracle, wallet)

        self.outbox = ChannelOutbox(transport, gap_ms=settings.channel_send_gap_ms)
        self.ticket_handler = TicketHandler(
            settings, self.registry, self.gate, oracle, self.outbox, transport
        )
        self.sniper = Sniper(settings, self.registry, self.outbox)
        self.router = MessageRouter(
            settings, transport, self.registry, self.ticket_handler, self.sniper, self.outbox
        )
        self.payout_monitor = PayoutMonitor(
            self.registry,
            self.ticket_handler,
            wallet,
            oracle,
            network=settings.crypto_network,
            tolerance_pct=settings.payout_tolerance_pct,
            receipts_limit=settings.wallets.receipts_limit,
        )

        logger.info(f"Runtime ready: {self.registry.stats()}")

    def shutdown(self) -> bool:
        """Flush state synchronously; returns False when the final save failed."""
        saved = self.persistence.save_sync()
        if saved:
            logger.info("✓ State saved on shutdown")
        else:
            logger.error("Final state save failed; state may be one change stale")
        return saved

    async def stop(self) -> bool:
        """Let any in-flight background save finish, then save synchronously."""
        await self.persistence.flush()
        return self.shutdown()


async def run_bot(settings: Settings) -> None:
    """Connect to Discord and serve until the gateway closes."""
    network = settings.crypto_network
    client = DiscordChatClient(token=settings.discord_token)
    wallet = create_wallet(
        network,
        settings.payout_address(network),
        private_key=settings.private_key(network),
        config=settings.wallets,
    )
    oracle = PriceOracle(settings.prices, settings.payment_safety.price_safety)

    async with wallet, oracle:
        runtime = Runtime(settings, client, wallet, oracle)
        client.attach(runtime.router)

        scheduler = build_scheduler(settings, runtime)
        scheduler.start()
        logger.info(f"✓ {len(scheduler.get_jobs())} jobs registered")

        try:
            await client.run_forever()
        finally:
            scheduler.shutdown(wait=False)
            await runtime.stop()
