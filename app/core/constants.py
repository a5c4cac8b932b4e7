"""Application constants.

Contains expiry thresholds, identifier ranges, and credential character sets.
"""

# ---------------------------------------------------------------------------
# Expiry scan thresholds
# ---------------------------------------------------------------------------
EXPIRY_REMINDER_DAYS: tuple[int, ...] = (60, 30, 14, 7, 3, 1)

# Upper bounds (inclusive) for the priority of an expiring reminder.
EXPIRING_CRITICAL_MAX_DAYS: int = 1
EXPIRING_HIGH_MAX_DAYS: int = 7
EXPIRING_MEDIUM_MAX_DAYS: int = 14

# ---------------------------------------------------------------------------
# Profile identifiers
# ---------------------------------------------------------------------------
VTID_MIN: int = 1000
VTID_MAX: int = 9000

STAFF_NUMBER_MIN: int = 1000
STAFF_NUMBER_MAX: int = 9999
STAFF_NUMBER_MAX_ATTEMPTS: int = 50

# ---------------------------------------------------------------------------
# Generated credentials
# ---------------------------------------------------------------------------
PASSWORD_MIN_LENGTH: int = 6
PASSWORD_LOWERCASE: str = "abcdefghijklmnopqrstuvwxyz"
PASSWORD_UPPERCASE: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
PASSWORD_DIGITS: str = "0123456789"
PASSWORD_SYMBOLS: str = "!@#$%^&*"

# ---------------------------------------------------------------------------
# Table names
# ---------------------------------------------------------------------------
ACCOUNTS_TABLE: str = "accounts"
PROFILES_TABLE: str = "profiles"
CERTIFICATIONS_TABLE: str = "certifications"
NOTIFICATIONS_TABLE: str = "notifications"

# Title prefix on administrator copies of a notification
ADMIN_TITLE_PREFIX: str = "[Admin] "
