"""Constants for product bulk uploads."""

# Maximum rows per upload batch (keeps the batch document well under 16MB)
MAX_ROWS = 5000

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = {"csv", "xlsx"}

# Every upload must carry these columns (compared lowercase)
REQUIRED_HEADERS = [
    "wine name",
    "vintage",
    "grape varieties",
    "color",
    "base price (sek)",
    "producer name",
    "handle",
    "description",
    "description html",
    "image url",
]

VALID_COLORS = {"red", "white", "rose"}

# Producer names at least this similar are offered as suggestions
SIMILARITY_THRESHOLD = 0.7
MAX_SUGGESTIONS = 3
