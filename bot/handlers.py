# bot/handlers.py
import time

from telegram import Update
from telegram.ext import ContextTypes

from alerts.scheduler import AlertScheduler
from api.trigger import TriggerAPI

# --- Command Handlers ---

async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Displays a help message with all available commands."""
    help_text = """
    <b>Welcome to the Tokenwatch Alert Bot!</b>

    This bot watches your token thresholds and notifies you when they are crossed.

    <b><u>Available Commands:</u></b>
    /status - Get monitor status and totals
    /process - Run one alert cycle now
    /help - Show this help message
    """
    await update.message.reply_html(help_text)

async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Reports scheduler state and the totals accumulated so far."""
    scheduler: AlertScheduler = context.application.bot_data.get('scheduler')
    start_time = context.application.bot_data.get('start_time', 0)

    uptime_seconds = time.time() - start_time
    uptime_str = time.strftime('%H:%M:%S', time.gmtime(uptime_seconds))

    if scheduler is None:
        await update.message.reply_text("Monitor is not configured.")
        return

    if scheduler.cycle_in_progress:
        monitor_status = "🔄 Cycle in progress"
    elif scheduler.running:
        monitor_status = "✅ Running"
    else:
        monitor_status = "⏹️ Stopped"

    stats = scheduler.statistics
    last_run = stats.last_run.strftime('%Y-%m-%d %H:%M:%S UTC') if stats.last_run else 'Never'
    status_text = (
        f"<b>🤖 Monitor Status</b>\n"
        f"Uptime: <code>{uptime_str}</code>\n"
        f"Status: {monitor_status}\n\n"
        f"<b>📊 Totals</b>\n"
        f"Cycles: <code>{stats.cycles_run}</code>\n"
        f"Alerts processed: <code>{stats.alerts_processed}</code>\n"
        f"Triggers: <code>{stats.triggers_fired}</code>\n"
        f"Notifications sent: <code>{stats.notifications_sent}</code>\n"
        f"Errors: <code>{stats.errors}</code>\n"
        f"Skipped ticks: <code>{stats.skipped_ticks}</code>\n"
        f"Last run: <code>{last_run}</code>\n"
    )
    await update.message.reply_html(status_text)

async def process_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Runs one alert cycle on demand and replies with its statistics."""
    trigger_api: TriggerAPI = context.application.bot_data.get('trigger_api')
    if trigger_api is None:
        await update.message.reply_text("Monitor is not configured.")
        return

    await update.message.reply_text("Processing alerts...")
    status, payload = await trigger_api.process_now()
    if status != 200:
        await update.message.reply_text(f"❌ {payload.get('error', 'Failed to process request')}")
        return

    stats = payload['stats']
    await update.message.reply_html(
        f"<b>✅ Cycle complete</b>\n"
        f"Processed: <code>{stats['processed']}</code>\n"
        f"Triggered: <code>{stats['triggered']}</code>\n"
        f"Sent: <code>{stats['sent']}</code>\n"
        f"Errors: <code>{stats['errors']}</code>"
    )
