import asyncio
from typing import Optional

from loguru import logger
from telegram import Bot, Update
from telegram.error import TelegramError

from stockalert.config import BOT_TOKEN, ADMIN_CHAT_ID


class TelegramNotifier:
    """
    Delivers text messages to Telegram chats.

    The chat id is the user id. Without a token (or in dry-run mode) messages
    are only logged.
    """

    def __init__(self, token: str = BOT_TOKEN, admin_chat_id: str = ADMIN_CHAT_ID, dry_run: bool = False):
        self.token = token
        self.admin_chat_id = admin_chat_id
        self.dry_run = dry_run or not token
        self._bot: Optional[Bot] = None

    @property
    def bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(self.token)
        return self._bot

    async def send(self, user_id: str, text: str) -> bool:
        """
        Send message to a chat.

        Returns:
            True if sent successfully, False otherwise (never raises)
        """
        if self.dry_run:
            logger.info(f"[dry-run] MSG -> {user_id}: {text}")
            return True

        try:
            await self.bot.send_message(chat_id=user_id, text=text)
            return True
        except Exception as e:
            logger.exception(f"Failed to send message to {user_id}: {e}")
            return False

    async def notify_admin(self, error_type: str, error_msg: str, context: str = "") -> bool:
        """
        Send error report to the admin chat.

        Args:
            error_type: Type of error (e.g., "Startup", "Runtime")
            error_msg: Error message
            context: Additional context
        """
        from stockalert.notif.templates import template_error_admin

        if not self.admin_chat_id:
            logger.error(f"[admin] {error_type}: {error_msg} {context}".rstrip())
            return False

        return await self.send(self.admin_chat_id, template_error_admin(error_type, error_msg, context))

    async def close(self):
        if self._bot is not None and not self.dry_run:
            try:
                await self._bot.shutdown()
            except TelegramError as e:
                logger.warning(f"Error closing Telegram bot: {e}")


async def _handle_update(update: Update, handler, notifier: TelegramNotifier) -> None:
    message = update.message
    if message is None or not message.text:
        return

    user_id = str(message.chat_id)
    try:
        reply = await handler.handle(user_id, message.text)
    except Exception as e:
        logger.exception(f"Command handling failed for {user_id} ({message.text!r}): {e}")
        return

    if reply:
        await notifier.send(user_id, reply)


async def listen_for_commands(handler, notifier: TelegramNotifier, poll_timeout: int = 20) -> None:
    """
    Long-poll Telegram for text commands and reply through the notifier.

    Transport errors back off exponentially (1s -> 2 -> 4 ... up to 30s).
    In dry-run mode there is nothing to listen to; the task just idles.
    """
    if notifier.dry_run:
        logger.warning("Command listener disabled (no BOT_TOKEN / dry-run)")
        await asyncio.Event().wait()
        return

    bot = notifier.bot
    await bot.initialize()
    logger.info(f"Listening for commands as @{bot.username}")

    offset: Optional[int] = None
    backoff = 1
    max_backoff = 30

    while True:
        try:
            updates = await bot.get_updates(
                offset=offset,
                timeout=poll_timeout,
                allowed_updates=["message"]
            )
        except TelegramError as e:
            logger.warning(f"getUpdates failed: {type(e).__name__}: {e} - retrying in {backoff}s")
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, max_backoff)
            continue

        backoff = 1
        for update in updates:
            offset = update.update_id + 1
            await _handle_update(update, handler, notifier)
