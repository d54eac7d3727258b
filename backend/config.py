"""Runtime configuration, read from the environment (and a local .env file)."""
import os

from dotenv import load_dotenv

load_dotenv()


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


# Relative paths are anchored at the backend directory, where migrations run
DATABASE_PATH = os.path.join(
    os.path.dirname(os.path.abspath(__file__)),
    os.getenv("TASKWISE_DATABASE_PATH", "taskwise.db"),
)

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Reminder sweep: tasks due within this many hours get a push reminder
REMINDER_LOOKAHEAD_HOURS = _get_float("REMINDER_LOOKAHEAD_HOURS", 24.0)
# 0 disables the in-process sweep loop (use POST /reminders/sweep from a cron instead)
REMINDER_SWEEP_INTERVAL_SECONDS = _get_float("REMINDER_SWEEP_INTERVAL_SECONDS", 0.0)

# When unset, push messages are only logged
PUSH_WEBHOOK_URL = os.getenv("PUSH_WEBHOOK_URL")
PUSH_TIMEOUT_SECONDS = _get_float("PUSH_TIMEOUT_SECONDS", 10.0)

# Shared secret expected in X-Cron-Secret for externally triggered sweeps
CRON_SECRET = os.getenv("CRON_SECRET")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")


def ai_configured() -> bool:
    return bool(ANTHROPIC_API_KEY) and ANTHROPIC_API_KEY != "your-api-key-here"
