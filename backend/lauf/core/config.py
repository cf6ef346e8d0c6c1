import os
from dotenv import load_dotenv

# Load .env from the backend directory
load_dotenv(os.path.join(os.path.dirname(__file__), "..", "..", ".env"))

SECRET_KEY: str = os.getenv("SECRET_KEY", "lauf-dev-secret-change-in-prod")
ALGORITHM: str = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))  # 24h

# Database — stored in backend/data/
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.abspath(os.path.join(BASE_DIR, "..", ".."))

DATABASE_PATH: str = os.getenv(
    "DATABASE_PATH",
    os.path.join(BACKEND_DIR, "data", "lauf.db"),
)
SQLITE_BUSY_TIMEOUT: float = float(os.getenv("SQLITE_BUSY_TIMEOUT", "5"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Optimistic concurrency: how many times a conflicting write is replayed
OPTIMISTIC_RETRY_LIMIT: int = int(os.getenv("OPTIMISTIC_RETRY_LIMIT", "1"))

# Version history is streamed from the store in pages of this size
HISTORY_PAGE_SIZE: int = int(os.getenv("HISTORY_PAGE_SIZE", "50"))

# Event dispatch; webhook delivery is disabled when the URL is empty
EVENT_WEBHOOK_URL: str = os.getenv("EVENT_WEBHOOK_URL", "")
EVENT_WEBHOOK_TIMEOUT: float = float(os.getenv("EVENT_WEBHOOK_TIMEOUT", "10"))
# An outbox event that failed this many deliveries is dead-lettered and no longer retried
OUTBOX_MAX_ATTEMPTS: int = int(os.getenv("OUTBOX_MAX_ATTEMPTS", "10"))

# Seeded administrator account
DEFAULT_ADMIN_USERNAME: str = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
DEFAULT_ADMIN_PASSWORD: str = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin")
