"""Application constants."""

# Default timing for each workflow type, in hours.
# Direction (before/after the reference timestamp) is part of the workflow
# definition, not of these defaults.
DEFAULT_TIMING_HOURS = {
    "appointment_reminder_24h": 24,
    "appointment_reminder_2h": 2,
    "aftercare_instructions": 2,
    "review_request": 168,  # 7 days
    "re_engagement": 2160,  # 90 days
    "abandoned_request_recovery": 48,
}

# Template fallbacks
DEFAULT_ARTIST_NAME = "Our team"
DEFAULT_APPOINTMENT_TYPE_LABEL = "Tattoo Session"
DEFAULT_CUSTOMER_GREETING = "there"
REQUEST_DESCRIPTION_PREVIEW_CHARS = 100

# Ledger queries
DEFAULT_LOG_LIMIT = 100
MAX_LOG_LIMIT = 500
