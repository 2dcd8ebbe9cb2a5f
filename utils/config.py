import os
from dotenv import load_dotenv

load_dotenv()

BOT_TOKEN = os.getenv("BOT_TOKEN")

SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_PROOF_BUCKET = os.getenv("SUPABASE_PROOF_BUCKET", "deliveries")
REALTIME_ENABLED = os.getenv("REALTIME_ENABLED", "1") not in ("0", "false", "False")

DB_NAME = os.getenv("DB_NAME")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_MIN_POOL_SIZE = int(os.getenv("DB_MIN_POOL_SIZE", "2"))
DB_MAX_POOL_SIZE = int(os.getenv("DB_MAX_POOL_SIZE", "10"))

TIMEZONE = os.getenv("TIMEZONE", "Asia/Manila")
AVAILABLE_ORDERS_POLL_MINUTES = int(os.getenv("AVAILABLE_ORDERS_POLL_MINUTES", "2"))
REALTIME_IDLE_MINUTES = int(os.getenv("REALTIME_IDLE_MINUTES", "30"))
