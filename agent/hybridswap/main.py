"""Main orchestrator: wire chain access, session and API."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from web3 import AsyncWeb3

from .api import create_app
from .chain import ChainReader
from .config import Config
from .executor import SwapExecutor, TransactionTracker
from .price_sync import PriceFeedClient, PriceSyncController
from .session import SwapSession
from .signer import LocalAccountSigner, WalletRpcSigner
from .types import Direction

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)


class HybridSwapAgent:
    """Main agent orchestrator."""

    def __init__(self, config: Config):
        self.config = config
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(config.rpc_url))
        self.reader = ChainReader(self.w3, config)
        self.signer = self._make_signer()
        self.feed = PriceFeedClient(config.feed_base_url, config.feed_network)

        executor = None
        if self.signer is not None:
            tracker = TransactionTracker(
                self.reader,
                signer=self.signer,
                timeout=config.submission_timeout_seconds,
                poll_interval=config.confirmation_poll_seconds,
                display_seconds=config.notification_display_seconds,
                explorer_url=config.explorer_url,
            )
            executor = SwapExecutor(self.signer, tracker)

        price_sync = PriceSyncController(
            self.feed,
            timeframe=config.feed_timeframe,
            limit=config.feed_limit,
            poll_interval=config.poll_interval_seconds,
            fast_poll_interval=config.fast_poll_interval_seconds,
            fast_window=config.fast_poll_window_seconds,
        )
        self.session = SwapSession(config, self.reader, self.signer, executor, price_sync)
        self.app = create_app(self.session, lifespan=self._lifespan)

    def _make_signer(self):
        if self.config.private_key:
            return LocalAccountSigner(self.w3, self.config.private_key)
        if self.config.wallet_address:
            return WalletRpcSigner(self.w3, self.config.wallet_address, self.config.chain_id)
        logger.info("No signer configured; running quote-only")
        return None

    @asynccontextmanager
    async def _lifespan(self, app):
        await self.session.select_pair(self.config.default_pair.pair_id)
        yield
        if self.session.price_sync:
            self.session.price_sync.stop()
        await self.feed.close()

    def start(self):
        """Start the API server (blocks)."""
        logger.info(f"HybridSwap Agent starting on {self.config.api_host}:{self.config.api_port}")
        uvicorn.run(
            self.app,
            host=self.config.api_host,
            port=self.config.api_port,
            log_level="info",
        )


def main():
    """Entry point."""
    import argparse
    from pathlib import Path

    from dotenv import load_dotenv

    # Load .env from project root (one level above agent/)
    env_path = Path(__file__).parent.parent.parent / ".env"
    load_dotenv(env_path)

    parser = argparse.ArgumentParser(description="HybridSwap Agent")
    parser.add_argument("--check", action="store_true", help="Resolve the default pool and quote once, then exit")
    parser.add_argument("--rpc", default=None, help="RPC URL (overrides .env)")
    parser.add_argument("--port", type=int, default=None, help="API port")
    args = parser.parse_args()

    config = Config()
    if args.rpc:
        config.rpc_url = args.rpc
    if args.port:
        config.api_port = args.port

    logger.info("Config loaded:")
    logger.info(f"  RPC:      {config.rpc_url[:40]}...")
    logger.info(f"  Router:   {config.router_address}")
    logger.info(f"  Quoter:   {config.quoter_address}")
    logger.info(f"  OTC:      {config.otc_address or '-'}")
    logger.info(f"  Pairs:    {', '.join(p.pair_id for p in config.pairs)}")
    logger.info(f"  Chain ID: {config.chain_id}")

    agent = HybridSwapAgent(config)
    if args.check:
        asyncio.run(_run_check(agent))
    else:
        agent.start()


async def _run_check(agent: HybridSwapAgent):
    """Resolve each pair and quote a small buy against the live chain."""
    logger.info("=== HybridSwap check ===")
    session = agent.session
    for pair in agent.config.pairs:
        enabled = await session.select_pair(pair.pair_id)
        if not enabled:
            logger.error(f"{pair.pair_id}: {session.last_error}")
            continue
        intent = session.make_intent(Direction.BUY, 10**15)
        quote = await session.engine.quote(intent, session.route, 10**pair.token_decimals)
        logger.info(
            f"{pair.pair_id}: 0.001 native -> {quote.estimated_output_amount} "
            f"({quote.confidence.value}, {len(quote.source_breakdown)} source(s))"
        )
    if session.price_sync:
        session.price_sync.stop()
    await agent.feed.close()
    logger.info("=== Check finished ===")


if __name__ == "__main__":
    main()
