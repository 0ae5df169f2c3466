#!/usr/bin/env python3
import asyncio
import logging
import signal
import time
from typing import NamedTuple

import aiohttp
from dotenv import load_dotenv
from telegram import Bot, BotCommand
from telegram.ext import Application, CommandHandler
from telegram.error import TimedOut, TelegramError

import constants
from config import AppConfig, load_config
from alerts.cooldown import CooldownTracker
from alerts.cycle import AlertProcessingCycle
from alerts.models import CycleStatistics, MonitorStatistics
from alerts.scheduler import AlertScheduler
from api.server import build_server
from api.trigger import TriggerAPI
from bot.handlers import help_command, process_command, status_command
from notifications.dispatcher import NotificationDispatcher
from services.dexscreener_client import DexScreenerClient
from services.telegram_push import TelegramPushSender
from services.twilio_client import TwilioClient
from storage import SQLiteAlertStore, StoreError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Engine(NamedTuple):
    cooldown: CooldownTracker
    dispatcher: NotificationDispatcher
    scheduler: AlertScheduler
    trigger_api: TriggerAPI


def build_engine(config: AppConfig, session: aiohttp.ClientSession, store, bot: Bot | None) -> Engine:
    """Wires the fetcher, senders, cooldown, cycle and scheduler together."""
    push_sender = None
    if bot is not None:
        push_sender = TelegramPushSender(bot, store, config.telegram_chat_id)
    else:
        print(f"{constants.C_YELLOW}{constants.TELEGRAM_BOT_TOKEN_ENV_VAR} not set; push notifications are disabled.{constants.C_RESET}")

    twilio_client = None
    if config.twilio_configured:
        twilio_client = TwilioClient(
            session,
            config.twilio_account_sid,
            config.twilio_auth_token,
            config.twilio_phone_number,
        )
    else:
        print(f"{constants.C_YELLOW}Twilio credentials not found; SMS and voice notifications are disabled.{constants.C_RESET}")

    dispatcher = NotificationDispatcher(
        push_sender=push_sender,
        sms_sender=twilio_client,
        voice_sender=twilio_client,
        channel_timeout=config.channel_timeout,
    )
    cooldown = CooldownTracker(window_seconds=config.cooldown)
    cycle = AlertProcessingCycle(
        store,
        DexScreenerClient(session, chain=config.chain),
        dispatcher,
        cooldown,
        token_delay=config.token_delay,
        group_concurrency=config.group_concurrency,
        snapshot_writeback=config.snapshot_writeback,
    )
    scheduler = AlertScheduler(cycle, cooldown, prune_cooldown=config.prune_cooldown)
    return Engine(cooldown, dispatcher, scheduler, TriggerAPI(scheduler, dispatcher))


def _new_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(headers={'User-Agent': 'Tokenwatch/1.0'})


async def run_process_once(config: AppConfig, store) -> CycleStatistics:
    bot = None
    async with _new_session() as session:
        if config.telegram_bot_token:
            bot = Bot(config.telegram_bot_token)
            await bot.initialize()
        try:
            engine = build_engine(config, session, store, bot)
            return await engine.scheduler.run_once()
        finally:
            if bot is not None:
                await bot.shutdown()
            await store.close()


async def _start_command_bot(application: Application) -> None:
    await application.initialize()
    commands = [
        BotCommand("status", "Check monitor status"),
        BotCommand("process", "Run one alert cycle now"),
        BotCommand("help", "Show help message"),
    ]
    try:
        await application.bot.set_my_commands(commands)
    except (TimedOut, TelegramError) as exc:
        print(
            f"{constants.C_YELLOW}Warning: unable to set Telegram bot commands ({exc})."
            f" Continuing startup without updating commands.{constants.C_RESET}"
        )
    await application.start()
    await application.updater.start_polling()


async def run_monitor(config: AppConfig, store) -> MonitorStatistics:
    """Runs the scheduler (plus optional HTTP and Telegram surfaces) until SIGINT/SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable on this platform; relying on KeyboardInterrupt")

    application = None
    bot = None
    server = None
    server_task = None
    async with _new_session() as session:
        if config.telegram_bot_token:
            if config.telegram_commands:
                application = Application.builder().token(config.telegram_bot_token).build()
                bot = application.bot
            else:
                bot = Bot(config.telegram_bot_token)
                await bot.initialize()

        engine = build_engine(config, session, store, bot)
        scheduler = engine.scheduler

        if application is not None:
            application.bot_data['start_time'] = time.time()
            application.bot_data['scheduler'] = scheduler
            application.bot_data['trigger_api'] = engine.trigger_api
            application.add_handler(CommandHandler("start", help_command))
            application.add_handler(CommandHandler("help", help_command))
            application.add_handler(CommandHandler("status", status_command))
            application.add_handler(CommandHandler("process", process_command))
            await _start_command_bot(application)
            print("Telegram command bot started.")

        if config.api_port:
            server = build_server(engine.trigger_api, config.api_host, config.api_port)
            server_task = asyncio.create_task(server.serve(), name="trigger-api")
            print(f"Trigger API listening on {constants.C_BLUE}http://{config.api_host}:{config.api_port}{constants.C_RESET}")

        print(f"{constants.C_GREEN}Alert monitor started. Checking alerts every {config.interval:g} seconds...{constants.C_RESET}")
        scheduler.start(config.interval)
        try:
            await stop_event.wait()
        finally:
            print("\nShutting down alert monitor...")
            statistics = await scheduler.stop(config.shutdown_grace)
            if server is not None:
                server.should_exit = True
                await server_task
            if application is not None:
                await application.updater.stop()
                await application.stop()
                await application.shutdown()
            elif bot is not None:
                await bot.shutdown()
            await store.close()
    return statistics


def main() -> None:
    """The main synchronous entry point for the application."""
    load_dotenv()
    config = load_config()
    logging.basicConfig(level=getattr(logging, config.log_level), format=LOG_FORMAT)

    try:
        store = SQLiteAlertStore(config.db_path)
    except StoreError as exc:
        print(f"{constants.C_RED}Unable to open alert store: {exc}{constants.C_RESET}")
        exit(1)

    if config.show_alerts:
        try:
            records = asyncio.run(store.fetch_alert_rows())
        finally:
            asyncio.run(store.close())
        _print_alerts(records)
        return

    if config.show_notifications:
        try:
            records = asyncio.run(store.fetch_notifications(limit=config.limit))
        finally:
            asyncio.run(store.close())
        _print_notifications(records, config.limit)
        return

    if config.process_once:
        stats = asyncio.run(run_process_once(config, store))
        _print_cycle_statistics(stats)
        return

    try:
        statistics = asyncio.run(run_monitor(config, store))
    except KeyboardInterrupt:
        print(f"{constants.C_YELLOW}Interrupted before a clean shutdown.{constants.C_RESET}")
        return
    _print_final_statistics(statistics)


def _format_usd(value: float | None) -> str:
    if value is None:
        return "-"
    return f"${value:,.2f}" if value < 1000 else f"${value:,.0f}"


def _print_table(headers: list[str], rows: list[list[str]]) -> None:
    widths = [len(h) for h in headers]
    for row in rows:
        for idx, cell in enumerate(row):
            widths[idx] = max(widths[idx], len(cell))

    def _format_line(row: list[str]) -> str:
        return "  ".join(cell.ljust(widths[idx]) for idx, cell in enumerate(row))

    print(_format_line(headers))
    print("  ".join('-' * w for w in widths))
    for row in rows:
        print(_format_line(row))


def _print_cycle_statistics(stats: CycleStatistics) -> None:
    colour = constants.C_GREEN if stats.errors == 0 else constants.C_YELLOW
    print(f"{colour}Alert cycle complete{constants.C_RESET}")
    print(f"  Processed: {stats.processed}")
    print(f"  Triggered: {stats.triggered}")
    print(f"  Sent:      {stats.sent}")
    print(f"  Errors:    {stats.errors}")
    if stats.suppressed:
        print(f"  Suppressed by cooldown: {stats.suppressed}")


def _print_final_statistics(statistics: MonitorStatistics) -> None:
    print(f"{constants.C_CYAN}Final Statistics:{constants.C_RESET}")
    print(f"  Cycles run:          {statistics.cycles_run}")
    print(f"  Alerts processed:    {statistics.alerts_processed}")
    print(f"  Triggers fired:      {statistics.triggers_fired}")
    print(f"  Notifications sent:  {statistics.notifications_sent}")
    print(f"  Errors:              {statistics.errors}")
    print(f"  Skipped ticks:       {statistics.skipped_ticks}")
    if statistics.last_run:
        print(f"  Last run:            {statistics.last_run.strftime('%Y-%m-%d %H:%M:%S')} UTC")


def _print_alerts(records: list[dict]) -> None:
    heading = f"Showing {len(records)} stored alerts"
    print(heading)
    print("=" * len(heading))

    if not records:
        print("No alerts found.")
        return

    headers = ["Alert", "User", "Token", "Enabled", "Channels", "Price", "Market Cap", "24h %", "Volume 24h", "Thresholds"]

    def _channels(record: dict) -> str:
        names = [name for name, key in (("push", "push_enabled"), ("sms", "sms_enabled"), ("call", "calls_enabled")) if record.get(key)]
        return ",".join(names) if names else "-"

    def _thresholds(record: dict) -> str:
        parts = []
        if record.get("market_cap_enabled"):
            parts.append(f"mcap>{_format_usd(record.get('market_cap_high'))}/<{_format_usd(record.get('market_cap_low'))}")
        if record.get("price_change_enabled"):
            parts.append(f"chg {record.get('price_change_direction')} {record.get('price_change_threshold'):g}%")
        if record.get("volume_enabled"):
            parts.append(f"vol {record.get('volume_comparison')} {_format_usd(record.get('volume_threshold'))}")
        return "; ".join(parts) if parts else "-"

    rows = []
    for record in records:
        change = record.get("change_24h")
        rows.append([
            str(record.get("id", "")),
            str(record.get("user_id", "")),
            record.get("token_symbol", ""),
            "Yes" if record.get("notifications_enabled") else "No",
            _channels(record),
            f"{record['price']:.6g}" if record.get("price") is not None else "-",
            _format_usd(record.get("market_cap")),
            f"{change:+.2f}" if change is not None else "-",
            _format_usd(record.get("volume_24h")),
            _thresholds(record),
        ])
    _print_table(headers, rows)


def _print_notifications(records: list[dict], limit: int) -> None:
    heading = f"Showing up to {limit} notifications"
    print(heading)
    print("=" * len(heading))

    if not records:
        print("No notifications found.")
        return

    headers = ["Time (UTC)", "Token", "Kind", "Push", "SMS", "Voice", "Delivered", "Message"]

    def _flag(value: bool) -> str:
        return "Yes" if value else "No"

    rows = []
    for record in records:
        sent_at = record.get("sent_at")
        rows.append([
            sent_at.strftime("%Y-%m-%d %H:%M:%S") if sent_at else "N/A",
            record.get("token_symbol", ""),
            record.get("trigger_kind", ""),
            _flag(record.get("push_sent")),
            _flag(record.get("sms_sent")),
            _flag(record.get("voice_sent")),
            _flag(record.get("delivered")),
            record.get("message", ""),
        ])
    _print_table(headers, rows)


if __name__ == "__main__":
    main()
