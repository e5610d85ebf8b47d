import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Remote scheduling backend (visits, staff, patients, groups, patterns)
SCHEDULE_API_URL = os.getenv("SCHEDULE_API_URL", "http://localhost:3000/api").rstrip("/")
# Bearer token forwarded as-is; session handling lives outside this service
SCHEDULE_API_TOKEN = os.getenv("SCHEDULE_API_TOKEN")
SCHEDULE_API_TIMEOUT = float(os.getenv("SCHEDULE_API_TIMEOUT", "10"))

# Wall-clock zone used to turn a pattern's "HH:MM" into a timestamp
SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "Asia/Tokyo")

# Longest range (end - start, in days) accepted by pattern generation
GENERATE_MAX_DAYS = int(os.getenv("GENERATE_MAX_DAYS", "31"))

# Redis is optional - cache operations fail open when it is unreachable
REDIS_URL = os.getenv("REDIS_URL")
REFERENCE_CACHE_TTL = int(os.getenv("REFERENCE_CACHE_TTL", "300"))  # 5 minutes
FILTERS_CACHE_TTL = int(os.getenv("FILTERS_CACHE_TTL", str(30 * 24 * 3600)))  # 30 days

# Weekly windows kept in process memory; least recently used are evicted first
WINDOW_CACHE_SIZE = int(os.getenv("WINDOW_CACHE_SIZE", "16"))
