#!/usr/bin/env python3

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_YELLOW = '\033[93m'
C_BLUE = '\033[94m'
C_CYAN = '\033[96m'
C_RESET = '\033[0m'

# --- API Configuration ---
DEXSCREENER_API_BASE_URL = 'https://api.dexscreener.com/latest/dex'
TWILIO_API_BASE_URL = 'https://api.twilio.com/2010-04-01'

# --- Environment Variable Names ---
TELEGRAM_BOT_TOKEN_ENV_VAR = 'TELEGRAM_BOT_TOKEN'
TELEGRAM_CHAT_ID_ENV_VAR = 'TELEGRAM_CHAT_ID'
TWILIO_ACCOUNT_SID_ENV_VAR = 'TWILIO_ACCOUNT_SID'
TWILIO_AUTH_TOKEN_ENV_VAR = 'TWILIO_AUTH_TOKEN'
TWILIO_PHONE_NUMBER_ENV_VAR = 'TWILIO_PHONE_NUMBER'
DB_PATH_ENV_VAR = 'TOKENWATCH_DB_PATH'

# --- Engine Defaults ---
DEFAULT_DB_PATH = 'data/tokenwatch.db'
DEFAULT_CHAIN = 'solana'
ANY_CHAIN = 'any'
MONITOR_INTERVAL_SECONDS = 5.0
TOKEN_GROUP_DELAY_SECONDS = 0.5  # spacing between upstream calls
DEXSCREENER_RATE_LIMIT_DELAY = 0.2
ALERT_COOLDOWN_SECONDS = 15 * 60
CHANNEL_TIMEOUT_SECONDS = 10.0
SHUTDOWN_GRACE_SECONDS = 15.0

# --- Trigger API ---
TEST_ALERT_ID = 'test-alert'
GENERIC_ERROR_MESSAGE = 'Failed to process request'

# Sample values used by the send-test endpoint: (current, threshold)
TEST_NOTIFICATION_VALUES = {
    'market_cap': (1_000_000.0, 800_000.0),
    'price_change': (25.5, 20.0),
    'volume': (500_000.0, 400_000.0),
}
