import os
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

load_dotenv()

SITE_TIMEZONE = ZoneInfo(os.environ.get("SITE_TIMEZONE", "UTC"))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Comma separated; "*" keeps the public widget reachable from any origin
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]
