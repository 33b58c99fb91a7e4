#!/usr/bin/env python3
"""
Main application - Runs one browsing context against the configured ledger
and reports its compliance funnel state
"""

import argparse
import asyncio
import json
import signal
import sys
from typing import Any, Dict, Optional

from config import FUNNEL_CONFIG, LEDGER_CONFIG, LOGGING_CONFIG, SESSION_CONFIG
from core import ConnectionManager
from core.config_validator import validate_startup_config
from core.exceptions import ConfigValidationError, FunnelException
from core.logging_config import get_logger, setup_logging
from events import EventTypes, SystemEvent, event_bus
from funnel import FunnelState
from ledger import (
    FaucetClient,
    LedgerClient,
    LedgerConnection,
    credential_type_hex,
    issuer_provider_from_config,
    to_currency_code,
)
from security import SecurityError
from session import BrowserContext, ConnectChoice, Origin


class LedgerFunnelApp:
    def __init__(self,
                 ledger_config: Dict[str, Any] = LEDGER_CONFIG,
                 funnel_config: Dict[str, Any] = FUNNEL_CONFIG,
                 session_config: Dict[str, Any] = SESSION_CONFIG):
        self.logger = get_logger(__name__)
        self.ledger_config = ledger_config
        self.funnel_config = funnel_config
        self.session_config = session_config

        # One shared ledger connection for every context
        self.connection = LedgerConnection(
            ledger_config["endpoint"],
            request_timeout=ledger_config["request_timeout"],
            connect_timeout=ledger_config["connect_timeout"],
        )
        self.connection_manager = ConnectionManager(
            self.connection,
            connect_timeout=ledger_config["connect_timeout"],
            bus=event_bus,
        )
        self.client = LedgerClient(self.connection)

        self.faucet = FaucetClient(ledger_config["faucet_url"], timeout=ledger_config["funding_timeout"])
        self.issuer_provider = issuer_provider_from_config(ledger_config)
        self.origin = Origin.from_config(session_config)

        self.context: Optional[BrowserContext] = None
        self._stop_event: Optional[asyncio.Event] = None

    def open_context(self) -> BrowserContext:
        """Create a browsing context wired to the shared connection and origin"""
        context = BrowserContext(
            origin=self.origin,
            connection_manager=self.connection_manager,
            client=self.client,
            funder=self.faucet,
            issuer_provider=self.issuer_provider,
            credential_type=credential_type_hex(self.ledger_config["credential_type"]),
            asset_code=to_currency_code(self.ledger_config["asset_code"]),
            poll_interval_ms=self.funnel_config["poll_interval_ms"],
            request_timeout=self.ledger_config["request_timeout"],
            keys=self.session_config.get("keys"),
            recent_limit=self.session_config.get("recent_address_limit", 5),
            shared_fallback=self.session_config.get("shared_fallback", False),
        )
        context.funnel.add_listener(self._handle_state_change)
        context.bus.on(EventTypes.FUNNEL_REFRESH_ERROR, self._handle_refresh_error)
        return context

    async def connect_identity(self, context: BrowserContext, mode: str = "auto"):
        """
        Connect the context to an identity

        Args:
            context: Context to connect
            mode: "new" forces a fresh identity, "saved" requires the saved one,
                "auto" prefers the saved one when there is a choice
        """
        if mode == "new":
            return await context.identity_store.create_new()

        result = await context.identity_store.connect()
        if isinstance(result, ConnectChoice):
            self.logger.info(f"Restoring saved identity {result.saved_address}")
            return result.use_saved()
        return result

    async def run(self, mode: str = "auto", once: bool = False) -> Optional[Dict[str, Any]]:
        """
        Connect and track the funnel until stopped

        Returns:
            The funnel snapshot when once is set
        """
        self._stop_event = asyncio.Event()
        self.context = self.open_context()

        try:
            if mode == "saved" and self.context.identity_store.saved_identity() is None:
                raise LookupError("No saved identity to restore")

            identity = await self.connect_identity(self.context, mode)
            self.logger.info(f"Tracking funnel state for {identity.address}")

            if once:
                await self.context.funnel.refresh()
                return self.context.funnel.get_snapshot()

            self.context.start()
            await self._stop_event.wait()
            return None

        finally:
            await self.stop()

    def request_stop(self) -> None:
        """Ask run() to return"""
        if self._stop_event is not None:
            self._stop_event.set()

    def _handle_state_change(self, old_state: FunnelState, new_state: FunnelState):
        self.logger.info(f"Funnel: {old_state.kind} → {new_state.kind}")
        if new_state.issuer_address and old_state.issuer_address != new_state.issuer_address:
            self.logger.info(f"Issuer: {new_state.issuer_address}")

    def _handle_refresh_error(self, event: SystemEvent):
        self.logger.warning(f"Refresh failed ({event.data.get('error_type')}): {event.data.get('error')}; "
                            f"keeping {event.data.get('state')}")

    async def stop(self) -> None:
        """Close the context and the shared connection"""
        self.logger.info("Stopping ledger funnel...")

        if self.context is not None:
            try:
                await self.context.close()
            except Exception as e:
                self.logger.error(f"Error closing browsing context: {e}", exc_info=True)
            self.context = None

        try:
            await self.connection_manager.disconnect()
        except Exception as e:
            self.logger.error(f"Error closing ledger connection: {e}", exc_info=True)

        self.logger.info("Ledger funnel stopped")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track an identity through the ledger compliance funnel")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--new", action="store_true", help="fund and use a fresh identity")
    group.add_argument("--use-saved", action="store_true", help="restore the saved identity")
    parser.add_argument("--once", action="store_true", help="refresh once, print the state and exit")
    return parser.parse_args(argv)


async def _main(args: argparse.Namespace) -> int:
    logger = get_logger(__name__)
    app = LedgerFunnelApp()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, app.request_stop)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C raises KeyboardInterrupt instead
            pass

    mode = "new" if args.new else "saved" if args.use_saved else "auto"

    try:
        snapshot = await app.run(mode=mode, once=args.once)
    except (FunnelException, SecurityError, LookupError) as e:
        logger.error(f"Ledger funnel failed: {e}")
        return 1

    if snapshot is not None:
        print(json.dumps(snapshot, indent=2))
        return 0 if snapshot["error"] is None else 1
    return 0


def cli(argv=None) -> None:
    args = parse_args(argv)

    # Setup logging system
    setup_logging(LOGGING_CONFIG)
    logger = get_logger(__name__)

    try:
        validate_startup_config()
    except ConfigValidationError as e:
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)

    logger.info("Starting ledger funnel")

    try:
        sys.exit(asyncio.run(_main(args)))
    except KeyboardInterrupt:
        print("\n\nShutting down...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
