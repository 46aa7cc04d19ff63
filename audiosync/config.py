"""Config & Constants"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (one level up from audiosync/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

# ─── Paths ────────────────────────────────────────────────────────────────────
ROOT_DIR = _ROOT
STATIC_DIR = ROOT_DIR / os.getenv("STATIC_DIR", "static")
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "output")
ERRORS_LOG = OUTPUT_DIR / "errors.log"

# ─── Web server ──────────────────────────────────────────────────────────────
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))

# ─── Player defaults ─────────────────────────────────────────────────────────
TRACK_DURATION = int(os.getenv("TRACK_DURATION", "180"))
DEFAULT_VOLUME = float(os.getenv("DEFAULT_VOLUME", "0.7"))  # also the unmute level

if TRACK_DURATION <= 0:
    raise ValueError(f"TRACK_DURATION must be positive, got {TRACK_DURATION}")
if not 0.0 <= DEFAULT_VOLUME <= 1.0:
    raise ValueError(f"DEFAULT_VOLUME must be within [0, 1], got {DEFAULT_VOLUME}")

# ─── Clock & fan-out ─────────────────────────────────────────────────────────
TICK_INTERVAL = float(os.getenv("TICK_INTERVAL", "1.0"))
# Publish a snapshot on every tick, even when nothing is playing
TICK_HEARTBEAT = os.getenv("TICK_HEARTBEAT", "1").strip() in ("1", "true", "yes")
SEND_TIMEOUT = float(os.getenv("SEND_TIMEOUT", "5.0"))

APP_VERSION = "0.1.0"

# ─── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
