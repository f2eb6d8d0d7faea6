"""Entry point: background jobs, live monitor and the dashboard feed."""

import asyncio
import os
import signal

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import Settings, settings
from paperhand.api.app import create_app
from paperhand.api.server import run_dashboard_server
from paperhand.cache import TTLCache
from paperhand.db.database import create_engine, create_session_factory, init_models
from paperhand.parsers.cielo.client import CieloClient
from paperhand.parsers.dexscreener.client import DexScreenerClient
from paperhand.parsers.helius.client import HeliusClient
from paperhand.parsers.helius.ws_client import HeliusTransactionMonitor, LiveTransaction
from paperhand.services.holder_tracker import HolderTracker
from paperhand.services.notifier import Notifier
from paperhand.services.price_oracle import PriceOracle
from paperhand.services.scheduler import PollScheduler
from paperhand.services.tracker import TrackerService
from paperhand.services.wallet_matcher import WalletMatcher
from paperhand.store.base import TrackerStore
from paperhand.store.memory import InMemoryStore
from paperhand.store.sql import SqlStore
from paperhand.utils.logger import setup_logger

HELIUS_WS_TEMPLATE = "wss://atlas-mainnet.helius-rpc.com/?api-key={key}"


def helius_ws_url(cfg: Settings) -> str:
    return cfg.helius_ws_url or HELIUS_WS_TEMPLATE.format(key=cfg.helius_api_key)


async def build_store(cfg: Settings) -> tuple[TrackerStore, AsyncEngine | None]:
    """SQL store for the configured database, in-process store when none is set."""
    if not cfg.database_url:
        logger.warning("[STORE] DATABASE_URL is empty, tracked tokens are kept in memory only")
        return InMemoryStore(), None
    engine = create_engine(cfg.database_url)
    await init_models(engine)
    return SqlStore(create_session_factory(engine)), engine


async def main(cfg: Settings = settings) -> None:
    setup_logger(level=os.getenv("LOG_LEVEL", "INFO"))
    logger.info(f"Starting paperhand (multi_tenant={cfg.multi_tenant})")

    store, engine = await build_store(cfg)

    dexscreener = DexScreenerClient(max_rps=cfg.dexscreener_max_rps)
    cielo = CieloClient(cfg.cielo_api_key, max_rps=cfg.cielo_max_rps)
    helius = HeliusClient(cfg.helius_api_key, cfg.helius_rpc_url, max_rps=cfg.helius_max_rps)

    oracle = PriceOracle(dexscreener, TTLCache(cfg.price_cache_ttl_sec))
    matcher = WalletMatcher(cielo, TTLCache(cfg.wallet_feed_ttl_sec))
    holders = HolderTracker(
        helius, top_n=cfg.holder_top_n, cache=TTLCache(cfg.holder_cache_ttl_sec)
    )
    notifier = Notifier(multi_tenant=cfg.multi_tenant)

    monitor: HeliusTransactionMonitor | None = None
    if cfg.helius_api_key and not cfg.multi_tenant:
        monitor = HeliusTransactionMonitor(
            helius_ws_url(cfg),
            ping_interval=cfg.ws_ping_interval_sec,
            reconnect_base_delay=cfg.ws_reconnect_base_delay_sec,
            max_reconnect_attempts=cfg.ws_max_reconnect_attempts,
            wallet_switch_grace=cfg.ws_wallet_switch_grace_sec,
        )
    elif cfg.multi_tenant:
        logger.info("[HELIUS_WS] Multi-tenant mode: live monitor disabled")
    else:
        logger.info("[HELIUS_WS] No API key configured, live monitor disabled")

    tracker = TrackerService(
        store,
        oracle,
        matcher,
        notifier,
        monitor=monitor,
        multi_tenant=cfg.multi_tenant,
        trade_sync_delay=cfg.trade_sync_item_delay_sec,
    )
    scheduler = PollScheduler(
        store,
        oracle,
        holders,
        matcher,
        notifier,
        sweep_interval=cfg.price_sweep_interval_sec,
        lookback_days=cfg.price_sweep_lookback_days,
        sweep_item_delay=cfg.price_sweep_item_delay_sec,
        recheck_item_delay=cfg.recheck_item_delay_sec,
    )

    if monitor is not None:

        async def _on_transaction(tx: LiveTransaction) -> None:
            await tracker.on_live_transaction(tx)

        monitor.on_transaction = _on_transaction
        wallets = await tracker.wallets_for(cfg.default_user_id) or {}
        if wallets.get("solana"):
            monitor.connect(wallets["solana"])
        else:
            logger.info("[HELIUS_WS] No Solana wallet configured yet")

    app = create_app(notifier, engine=engine, monitor=monitor, app_settings=cfg)

    # Graceful shutdown on SIGINT/SIGTERM
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    tasks = [
        asyncio.create_task(scheduler.run_price_sweep_loop(), name="price_sweep"),
        asyncio.create_task(oracle.eviction_loop(), name="price_eviction"),
        asyncio.create_task(run_dashboard_server(app, cfg.dashboard_port), name="dashboard"),
    ]

    # Wait for any task to finish or shutdown signal
    done, pending = await asyncio.wait(
        [*tasks, asyncio.create_task(shutdown_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Task {task.get_name()} crashed: {task.exception()}")

    # Cancel remaining tasks
    for task in pending:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    if monitor is not None:
        await monitor.disconnect()
    await dexscreener.close()
    await cielo.close()
    await helius.close()
    if engine is not None:
        await engine.dispose()
    logger.info("Shutdown complete")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
