"""Constants used throughout the client."""

# Activity verbs emitted by the conversation service
ACTIVITY_VERB_CREATE = "create"
ACTIVITY_VERB_UPDATE = "update"
ACTIVITY_VERB_LOCK = "lock"
ACTIVITY_VERB_UNLOCK = "unlock"

# Public room events
ROOM_EVENT_CREATED = "created"
ROOM_EVENT_UPDATED = "updated"

# Conversation tags
TAG_LOCKED = "LOCKED"
TAG_ONE_ON_ONE = "ONE_ON_ONE"
TAG_TEAM = "TEAM"

# Board content types
CONTENT_TYPE_FILE = "FILE"
CONTENT_TYPE_STRING = "STRING"

# Event locations are compact JWE strings: header.key.iv.ciphertext.tag
JWE_SEGMENT_COUNT = 5

# Default hydra cluster
DEFAULT_CLUSTER = "us"

# Days of history included by rooms.list_with_read_status(max_recent)
READ_STATUS_SINCE_DAYS = 14
