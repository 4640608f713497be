DOMAIN = "lullaby"
VERSION = "0.3.0"
MANUFACTURER = "Lullaby"

# Config entry keys
CONF_ENTRY_NAME = "entry_name"
CONF_USER_ID = "user_id"
CONF_PROJECT_ID = "project_id"
CONF_CREDENTIALS_PATH = "credentials_path"
CONF_API_URL = "api_url"
CONF_DAYS_BACK = "notification_days_back"

DEFAULT_API_URL = "https://lullaby-server.vercel.app/api"
DEFAULT_DAYS_BACK = 7        # notification feed lookback window

# Update intervals (seconds)
DEVICES_INTERVAL = 300        # device list — rarely changes
NOTIFICATIONS_INTERVAL = 600  # external notification feed poll

# Device activity
STALENESS_WINDOW_MS = 10 * 60 * 1000  # device is active if synced within this window
ACTIVITY_LABEL_REFRESH_INTERVAL = 60  # "time ago" label refresh, display only

# Event streams
LIVE_EVENTS_LIMIT = 50        # most-recent window of each per-device push subscription

# Timestamps below this are epoch seconds, at or above it epoch milliseconds
SECONDS_THRESHOLD = 1_000_000_000_000

# Feed HTTP request timeout (seconds)
REQUEST_TIMEOUT = 15

TEST_EVENT_NOTE = "Test event created from Home Assistant"
