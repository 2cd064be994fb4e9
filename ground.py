from __future__ import annotations

import asyncio
import logging
import os
from functools import partial
from typing import Optional

from telegram import Update
from telegram.ext import Application, CommandHandler, ContextTypes, MessageHandler, filters

import cope
import feed
import roots
from catalog import PromptCatalog
from scheduler import DeferredScheduler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

THINKING_MS = int(os.environ.get("COPE_THINKING_MS", "2000"))
FEED_LIMIT = 10

HELP_LINES = [
    "Available commands:",
    "  /confess <message> - Post an anonymous confession",
    "  /feed              - View recent confessions",
    "  /about             - About Cope Terminal",
    "  /help              - Show this help message",
    "Any plain message counts as a confession too.",
]
ABOUT_LINES = [
    "Cope Terminal v2.0.0",
    "Anonymous terminal for degen confessions",
    "Confessions are stored locally",
    "Replies sourced from local input.json/output.json with sarcasm enabled",
]

ENGINE = cope.ResponseEngine(PromptCatalog(os.environ.get("COPE_DATA_DIR") or None))
SCHEDULER: Optional[DeferredScheduler] = None
AUTO_FEED: Optional[feed.AutoFeed] = None


def _scheduler() -> DeferredScheduler:
    global SCHEDULER
    if SCHEDULER is None:
        SCHEDULER = DeferredScheduler()
    return SCHEDULER


def _deliver(loop: asyncio.AbstractEventLoop, message, text: str) -> None:
    """Hand the reply back to the bot's event loop."""
    asyncio.run_coroutine_threadsafe(message.reply_text(text), loop)


async def _confess(update: Update, context: ContextTypes.DEFAULT_TYPE, text: str) -> None:
    user_id = context.user_data.setdefault("cope_id", feed.random_user_id())
    confession = await asyncio.to_thread(roots.add_confession, text, user_id)
    await update.message.reply_text(
        f"[{confession.display_time}] {user_id}\n\"{text}\"\nConfession stored locally"
    )
    reply = feed.render_reply(ENGINE, text)
    loop = asyncio.get_running_loop()
    _scheduler().schedule(partial(_deliver, loop, update.message, reply), THINKING_MS)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Treat plain text as a confession and answer after a thinking delay."""
    try:
        text = (update.message.text or "").strip()
        if text:
            await _confess(update, context, text)
    except Exception:  # pragma: no cover - defensive
        logger.exception("error handling message")


async def handle_confess(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    try:
        text = " ".join(context.args or []).strip()
        if not text:
            await update.message.reply_text("Usage: /confess <your confession>")
            return
        await _confess(update, context, text)
    except Exception:  # pragma: no cover - defensive
        logger.exception("error handling /confess")


async def handle_feed(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    rows = await asyncio.to_thread(roots.recent, FEED_LIMIT)
    if not rows:
        await update.message.reply_text("No confessions found. Be the first to confess!")
        return
    lines = ["=== Local Pumpfessions ==="]
    for c in rows:
        lines.append(f"[{c.display_time}] {c.user_id}: \"{c.message}\"")
    await update.message.reply_text("\n".join(lines))


async def handle_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text("\n".join(HELP_LINES))


async def handle_about(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text("\n".join(ABOUT_LINES))


async def _post_init(application: Application) -> None:
    global AUTO_FEED
    await ENGINE.init()
    chat_id = os.environ.get("COPE_FEED_CHAT_ID")
    if chat_id:
        loop = asyncio.get_running_loop()

        def _sink(line: str) -> None:
            asyncio.run_coroutine_threadsafe(
                application.bot.send_message(chat_id=chat_id, text=line), loop
            )

        AUTO_FEED = feed.AutoFeed(ENGINE, _scheduler(), _sink)
        AUTO_FEED.start()


async def _post_shutdown(application: Application) -> None:
    logger.info("shutting down")
    if AUTO_FEED is not None:
        AUTO_FEED.stop()
    if SCHEDULER is not None:
        SCHEDULER.destroy()


def main() -> None:
    """Run the Telegram bot."""
    token = os.environ.get("TELEGRAM_TOKEN")
    if not token:
        raise RuntimeError("TELEGRAM_TOKEN not set")

    application = (
        Application.builder()
        .token(token)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    application.add_handler(CommandHandler("confess", handle_confess))
    application.add_handler(CommandHandler("feed", handle_feed))
    application.add_handler(CommandHandler("help", handle_help))
    application.add_handler(CommandHandler("start", handle_help))
    application.add_handler(CommandHandler("about", handle_about))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))

    application.run_polling()


if __name__ == "__main__":  # pragma: no cover - manual run
    main()
