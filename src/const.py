"""Application constants."""

import os
from pathlib import Path

APP_NAME = "SBC Guard"
APP_SLUG = "sbcguard"
APP_VERSION = "1.0.0"
LOGGER_PREFIX = "sbcguard"

# Paths
# src/const.py -> src/ -> root
BASE_DIR = Path(__file__).parent.parent.absolute()
LOG_DIR = Path(os.getenv("SBCGUARD_LOG_DIR", str(BASE_DIR / "logs")))
LOG_FILE = str(LOG_DIR / "sbcguard.log")
CONFIG_DIR = BASE_DIR / "config"
DEFAULT_CONFIG = str(CONFIG_DIR / "config.yaml")
DEFAULT_DATABASE_URL = f"sqlite:///{BASE_DIR / 'data' / 'sbcguard.db'}"

# Fail2ban defaults
DEFAULT_JAIL_NAME = "opensips-brute-force"
DEFAULT_SERVICE_NAME = "fail2ban"
DEFAULT_JAIL_CONFIG = "/etc/fail2ban/jail.d/opensips-brute-force.conf"
DEFAULT_STATUS_TIMEOUT = 5  # seconds, status queries are on the UI path
DEFAULT_COMMAND_TIMEOUT = 30  # seconds, mutations and restarts
DEFAULT_STATUS_CACHE_TTL = 5.0  # seconds

# Whitelist sync script locations (script strategy)
SYNC_SCRIPT_ENV = "FAIL2BAN_SYNC_SCRIPT_PATH"
SYNC_SCRIPT_SEARCH_PATHS = (
    "/home/ubuntu/pbx3sbc/scripts/sync-fail2ban-whitelist.sh",
    "/opt/pbx3sbc/scripts/sync-fail2ban-whitelist.sh",
    "/usr/local/pbx3sbc/scripts/sync-fail2ban-whitelist.sh",
    str(BASE_DIR.parent / "pbx3sbc" / "scripts" / "sync-fail2ban-whitelist.sh"),
)

# Whitelist column limits
IP_OR_CIDR_MAX_LEN = 45
COMMENT_MAX_LEN = 255

# Exit codes used by the command runner
EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127

# Ensure directories exist
os.makedirs(LOG_DIR, exist_ok=True)
