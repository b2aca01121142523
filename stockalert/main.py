import argparse
import asyncio
import signal
import sys
from loguru import logger

from stockalert.config import (
    LOG_LEVEL,
    BOT_TOKEN,
    ADMIN_CHAT_ID,
    get_config,
    get_bot_name,
    get_bot_version,
    get_quote_config,
    get_healthcheck_config,
    get_stock_name_overrides,
    wait_for_bot_token
)
from stockalert.utils.logging import setup_logging
from stockalert.commands import CommandHandler
from stockalert.datafeeds.twse import TwseQuoteClient, QuoteError
from stockalert.notif.templates import template_quote
from stockalert.rules.engine import AlertEngine
from stockalert.storage.history import VolumeHistory
from stockalert.storage.registry import AlertRegistry
from stockalert.telegram_bot import TelegramNotifier, listen_for_commands
from stockalert.utils.healthcheck import HealthcheckServer


def build_quote_client() -> TwseQuoteClient:
    quote_cfg = get_quote_config()
    return TwseQuoteClient(
        base_url=quote_cfg['base_url'],
        market=quote_cfg['market'],
        timeout=quote_cfg['timeout_seconds'],
        name_overrides=get_stock_name_overrides()
    )


async def run_bot(dry_run: bool = False) -> int:
    """
    Main bot runtime - runs all async tasks in parallel.

    Returns:
        Process exit code
    """
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    logger.info("=" * 60)

    try:
        logger.info("Loading configuration...")
        get_config()
        logger.info(f"Starting {get_bot_name()} v{get_bot_version()}")
        token = BOT_TOKEN if dry_run else await wait_for_bot_token()
    except Exception as e:
        logger.exception(f"Startup sequence failed: {e}")
        notifier = TelegramNotifier(token=BOT_TOKEN, admin_chat_id=ADMIN_CHAT_ID, dry_run=dry_run)
        await notifier.notify_admin("Startup", str(e), "Bot failed to start")
        await notifier.close()
        return 1

    logger.info("=" * 60)

    # Process-wide state, injected into every component that needs it
    registry = AlertRegistry()
    history = VolumeHistory()
    quote_client = build_quote_client()
    notifier = TelegramNotifier(token=token, admin_chat_id=ADMIN_CHAT_ID, dry_run=dry_run)

    engine = AlertEngine(registry, history, quote_client, notifier)
    handler = CommandHandler(registry, quote_client, name_overrides=quote_client.name_overrides)
    poll_timeout = int(get_config().get('telegram.poll_timeout_seconds', 20))

    tasks = [
        asyncio.create_task(engine.run(), name="AlertEngine"),
        asyncio.create_task(listen_for_commands(handler, notifier, poll_timeout), name="Commands"),
        asyncio.create_task(shutdown_event.wait(), name="ShutdownWatcher")
    ]

    hc_cfg = get_healthcheck_config()
    if hc_cfg.get('enabled', True):
        healthcheck = HealthcheckServer(engine, host=hc_cfg['host'], port=hc_cfg['port'])
        tasks.append(asyncio.create_task(healthcheck.run(), name="Healthcheck"))

    logger.info(f"Bot started in {'dry-run' if dry_run else 'live'} mode: {', '.join(t.get_name() for t in tasks)}")
    exit_code = 0

    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        for task in done:
            if task.get_name() != "ShutdownWatcher" and not task.cancelled() and task.exception():
                exc = task.exception()
                logger.opt(exception=exc).error(f"Task {task.get_name()} crashed: {exc}")
                await notifier.notify_admin("Runtime", str(exc), f"Task {task.get_name()} stopped")
                exit_code = 1

        logger.info("Shutting down, stopping tasks...")
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    finally:
        await engine.stop()
        await notifier.close()
        logger.info("Shutdown sequence completed")

    return exit_code


async def print_quote(code: str) -> int:
    try:
        snapshot = await build_quote_client().fetch(code)
    except QuoteError as e:
        logger.error(f"Quote for {code} failed: {e}")
        return 1
    print(template_quote(snapshot))
    return 0


async def send_ping(notifier: TelegramNotifier, text: str) -> bool:
    """Send a test message to the admin chat; False when nothing could be sent."""
    if notifier.dry_run:
        logger.warning("Ping not sent: dry-run mode (BOT_TOKEN not set)")
        return False
    if not notifier.admin_chat_id:
        logger.warning("Ping not sent: ADMIN_CHAT_ID not set")
        return False

    try:
        sent = await notifier.send(notifier.admin_chat_id, text)
        logger.info(f"Ping sent? {sent}")
        return sent
    finally:
        await notifier.close()


def main():
    parser = argparse.ArgumentParser(description="TWSE price/change/volume alert bot")
    parser.add_argument("--dry-run", action="store_true", help="Dry-run mode (logs only, no Telegram)")
    parser.add_argument("--ping", action="store_true", help="Send test message to the admin chat")
    parser.add_argument("--quote", metavar="CODE", help="Fetch and print one quote, then exit")
    args = parser.parse_args()

    setup_logging(LOG_LEVEL)

    if args.quote:
        sys.exit(asyncio.run(print_quote(args.quote)))

    if args.ping:
        sent = asyncio.run(send_ping(TelegramNotifier(), f"{get_bot_name()}: online"))
        sys.exit(0 if sent else 1)

    exit_code = 1
    try:
        exit_code = asyncio.run(run_bot(dry_run=args.dry_run))
    except KeyboardInterrupt:
        logger.info("Received KeyboardInterrupt, shutting down...")
        exit_code = 0
    except Exception as e:
        logger.exception(f"Unhandled exception in main: {e}")
    finally:
        logger.info("Bot stopped")

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
