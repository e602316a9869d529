import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Dislike categories a user picks one selection from.
DISLIKE_CATEGORY_COUNT = int(os.getenv("DISLIKE_CATEGORY_COUNT", "10"))

EARTH_RADIUS_KM = float(os.getenv("EARTH_RADIUS_KM", "6378.1"))
KM_PER_MILE = 1.609344

# Demo accounts whose group id is at or below this value are seeded as
# already connected to each other.
DEMO_AUTO_ACCEPT_MAX_GROUP_ID = int(os.getenv("DEMO_AUTO_ACCEPT_MAX_GROUP_ID", "10"))

JWT_SECRET = os.getenv("JWT_SECRET", "")
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"

STORE_RETRY_AFTER_SECONDS = int(os.getenv("STORE_RETRY_AFTER_SECONDS", "2"))
