import os

ROOM_TTL_MS = int(os.getenv("ROOM_TTL_MS", 60 * 60 * 1000))
PARTICIPANT_TTL_MS = int(os.getenv("PARTICIPANT_TTL_MS", 60 * 1000))
SWEEP_INTERVAL_MS = int(os.getenv("SWEEP_INTERVAL_MS", 10 * 1000))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 4000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

ROOM_CODE_LENGTH = 4
ROOM_CODE_ATTEMPTS = 10
MAX_DISPLAY_NAME_LENGTH = 12

HOST_KEY_LENGTH = 16
DISPLAY_TOKEN_LENGTH = 16

# Colours handed to participants in join order, reused once exhausted
PLAYER_PALETTE = [
    "#FF6B6B",
    "#4ECDC4",
    "#2ECC71",
    "#F1C40F",
    "#9B59B6",
    "#E67E22",
    "#1ABC9C",
    "#34495E",
]

DEFAULT_OBSTACLE_ACTION = "tap"

BROADCAST_SEND_TIMEOUT_MS = int(os.getenv("BROADCAST_SEND_TIMEOUT_MS", 5 * 1000))
