import os

from dotenv import load_dotenv

load_dotenv()

POSTGRES_USER = os.getenv("POSTGRES_USER")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD")
POSTGRES_DB = os.getenv("POSTGRES_DB_URL")

# DATABASE_URL wins over the POSTGRES_* triple
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_DB}",
)

# "sql" or "memory"
AMERICANO_STORE = os.getenv("AMERICANO_STORE", "sql")

DEFAULT_POINTS_PER_MATCH = int(os.getenv("DEFAULT_POINTS_PER_MATCH", "24"))
DEFAULT_TARGET_DURATION = int(os.getenv("DEFAULT_TARGET_DURATION", "105"))  # minutes
AUTO_ADVANCE = os.getenv("AUTO_ADVANCE", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
