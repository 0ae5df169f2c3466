#!/usr/bin/env python3
import os
import argparse
from typing import NamedTuple
import constants

class AppConfig(NamedTuple):
    """Typed configuration object."""
    interval: float
    token_delay: float
    group_concurrency: int
    cooldown: int
    prune_cooldown: bool
    channel_timeout: float
    chain: str
    db_path: str
    api_host: str
    api_port: int
    telegram_commands: bool
    snapshot_writeback: bool
    process_once: bool
    show_alerts: bool
    show_notifications: bool
    limit: int
    shutdown_grace: float
    log_level: str
    telegram_bot_token: str | None
    telegram_chat_id: str | None
    twilio_account_sid: str | None
    twilio_auth_token: str | None
    twilio_phone_number: str | None

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number)


def load_config() -> AppConfig:
    """
    Parses command-line arguments and loads environment variables to create a configuration object.
    """
    parser = argparse.ArgumentParser(
        description="Watch token market cap, price change and volume thresholds and notify users by push, SMS and voice.",
        epilog="Example: ./main.py --interval 5 --api-port 8080"
    )
    # --- Monitor ---
    parser.add_argument('--interval', type=float, default=constants.MONITOR_INTERVAL_SECONDS, help='Seconds between alert cycles (default: 5).')
    parser.add_argument('--token-delay', type=float, default=constants.TOKEN_GROUP_DELAY_SECONDS, help='Seconds to wait between token groups (default: 0.5).')
    parser.add_argument('--group-concurrency', type=int, default=1, help='Token groups processed at once (default: 1, sequential).')
    parser.add_argument('--cooldown', type=int, default=constants.ALERT_COOLDOWN_SECONDS, help='Seconds before re-notifying the same alert and trigger kind (default: 900).')
    parser.add_argument('--no-cooldown-prune', action='store_true', help='Keep expired cooldown entries in memory.')
    parser.add_argument('--channel-timeout', type=float, default=constants.CHANNEL_TIMEOUT_SECONDS, help='Per-channel send timeout in seconds (default: 10).')
    parser.add_argument('--chain', type=str, default=constants.DEFAULT_CHAIN, help="Only consider trading pairs on this chain; 'any' disables filtering (default: solana).")
    parser.add_argument('--db-path', type=str, help=f'SQLite database path (default: ${constants.DB_PATH_ENV_VAR} or {constants.DEFAULT_DB_PATH}).')
    parser.add_argument('--no-snapshot-writeback', action='store_true', help='Do not store fetched market values on alerts.')
    parser.add_argument('--shutdown-grace', type=float, default=constants.SHUTDOWN_GRACE_SECONDS, help='Seconds to let a running cycle finish on shutdown (default: 15).')
    parser.add_argument('--log-level', type=str.upper, default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], help='Logging level (default: INFO).')

    # --- Surfaces ---
    parser.add_argument('--api-host', type=str, default='127.0.0.1', help='Trigger API bind address (default: 127.0.0.1).')
    parser.add_argument('--api-port', type=int, default=0, help='Trigger API port; 0 disables the HTTP server (default: 0).')
    parser.add_argument('--telegram-commands', action='store_true', help='Serve /status, /process and /help over Telegram.')

    # --- One-shot modes ---
    parser.add_argument('--process-once', action='store_true', help='Run a single alert cycle, print its statistics and exit.')
    parser.add_argument('--show-alerts', action='store_true', help='Display stored alerts and exit.')
    parser.add_argument('--show-notifications', action='store_true', help='Display recent notifications and exit.')
    parser.add_argument('--limit', type=int, default=10, help='Number of notifications to display (default: 10).')

    args = parser.parse_args()

    if args.interval <= 0:
        parser.error('--interval must be positive.')
    if args.group_concurrency < 1:
        parser.error('--group-concurrency must be at least 1.')

    # Load from environment
    telegram_bot_token = os.environ.get(constants.TELEGRAM_BOT_TOKEN_ENV_VAR)
    telegram_chat_id = os.environ.get(constants.TELEGRAM_CHAT_ID_ENV_VAR)
    twilio_account_sid = os.environ.get(constants.TWILIO_ACCOUNT_SID_ENV_VAR)
    twilio_auth_token = os.environ.get(constants.TWILIO_AUTH_TOKEN_ENV_VAR)
    twilio_phone_number = os.environ.get(constants.TWILIO_PHONE_NUMBER_ENV_VAR)
    db_path = args.db_path or os.environ.get(constants.DB_PATH_ENV_VAR) or constants.DEFAULT_DB_PATH

    if args.telegram_commands and not telegram_bot_token:
        print(f"{constants.C_RED}Telegram commands are enabled, but {constants.TELEGRAM_BOT_TOKEN_ENV_VAR} is not set.{constants.C_RESET}")
        exit(1)

    if not 0 <= args.api_port <= 65535:
        print(f"{constants.C_RED}--api-port must be between 0 and 65535.{constants.C_RESET}")
        exit(1)

    return AppConfig(
        interval=args.interval,
        token_delay=args.token_delay,
        group_concurrency=args.group_concurrency,
        cooldown=args.cooldown,
        prune_cooldown=not args.no_cooldown_prune,
        channel_timeout=args.channel_timeout,
        chain=args.chain.lower(),
        db_path=db_path,
        api_host=args.api_host,
        api_port=args.api_port,
        telegram_commands=args.telegram_commands,
        snapshot_writeback=not args.no_snapshot_writeback,
        process_once=args.process_once,
        show_alerts=args.show_alerts,
        show_notifications=args.show_notifications,
        limit=args.limit,
        shutdown_grace=args.shutdown_grace,
        log_level=args.log_level,
        telegram_bot_token=telegram_bot_token,
        telegram_chat_id=telegram_chat_id,
        twilio_account_sid=twilio_account_sid,
        twilio_auth_token=twilio_auth_token,
        twilio_phone_number=twilio_phone_number,
    )
