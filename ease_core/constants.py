"""Global constants for the Ease Core bot."""

from __future__ import annotations

# ============================================================================
# Webhook
# ============================================================================

WEBHOOK_ROUTE = "/easebot"
DEFAULT_SIGNATURE_HEADER = "X-Ease-Signature"
WEBHOOK_MAX_BODY_BYTES = 256 * 1024
DEFAULT_PORT = 3000

# ============================================================================
# Rate Limiting
# ============================================================================

WEBHOOK_RATE_LIMIT_MAX_REQUESTS = 30
WEBHOOK_RATE_LIMIT_WINDOW_SECONDS = 60

RATE_LIMIT_ALERT_THRESHOLD = 3  # violations before a warning is logged
RATE_LIMIT_ALERT_WINDOW_SECONDS = 300  # 5 minutes

COOLDOWN_MANUAL_PURCHASE_SECONDS = 60
RATE_LIMIT_MANUAL_PURCHASE_MAX = 5

# ============================================================================
# Storage
# ============================================================================

DEFAULT_DATA_DIR = "data"
DEFAULT_LEDGER_FILE = "ledger.json"
DEFAULT_AUDIT_FILE = "audit_log.json"
DEFAULT_BACKUP_DIR = "backups"
BACKUP_RETENTION_DAYS = 30

AUDIT_LOG_CAPACITY = 20_000
AUDIT_LOG_DEFAULT_READ_LIMIT = 200
PROCESSED_EVENT_HISTORY = 5_000

# ============================================================================
# Collaborators
# ============================================================================

COLLABORATOR_TIMEOUT_SECONDS = 10.0

# ============================================================================
# Currency
# ============================================================================

DEFAULT_CURRENCY_SYMBOL = "R$"

# Largest single contribution accepted; stored totals stay exact to the cent
MAX_CONTRIBUTION_AMOUNT = 1_000_000_000_000

# ============================================================================
# Ranks (threshold, role_id)
# ============================================================================

DEFAULT_RANKS: tuple[tuple[int, int], ...] = (
    (1, 1437232831112941589),
    (50, 1437233140757168288),
    (100, 1437233233086517329),
    (500, 1437233800537968656),
    (1000, 1437234287761166396),
    (5000, 1437234433081212938),
    (10000, 1437234657191137311),
    (15000, 1437234823684161536),
    (20000, 1437234957314560070),
)

# ============================================================================
# Logging
# ============================================================================

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3
DISCORD_MESSAGE_MAX_LENGTH = 2000
