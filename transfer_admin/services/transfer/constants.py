"""
Constants shared by the transfer token services
"""

DAY_IN_MS = 24 * 60 * 60 * 1000

# Allowed token lifespans in milliseconds, None meaning the token never expires
TRANSFER_TOKEN_LIFESPANS: dict[str, int | None] = {
    "UNLIMITED": None,
    "DAYS_7": 7 * DAY_IN_MS,
    "DAYS_30": 30 * DAY_IN_MS,
    "DAYS_90": 90 * DAY_IN_MS,
}

DEFAULT_TRANSFER_ACTIONS = ("push", "pull")

ACCESS_KEY_BYTES = 128
ACCESS_KEY_MIN_LENGTH = 15

# Token columns returned to callers; the hashed access key is never selected
SELECT_FIELDS = (
    "id",
    "name",
    "description",
    "last_used_at",
    "lifespan",
    "expires_at",
    "created_at",
    "updated_at",
)

POPULATE_FIELDS = ("permissions",)

# Columns a single token can be looked up by; access_key is the stored hash
LOOKUP_FIELDS = ("id", "name", "last_used_at", "description", "access_key")
