import uvicorn
import os
from constants import HOST, PORT, LOG_LEVEL, LOG_FILE
from logging_config import setup_logging

# Setup logging before uvicorn imports the app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    reload = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")
    logger.info(f"Starting Marble Party server on {HOST}:{PORT}")
    uvicorn.run("app:app", host=HOST, port=PORT, reload=reload, log_level=LOG_LEVEL.lower())
