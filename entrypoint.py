import uvicorn
import os

# Importing the app configures logging from LOG_LEVEL / LOG_FILE
from app import app
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    logger.info(f"Starting RoomPulse server on {host}:{port}")
    # Single worker: the event listener and sweep loop run inside this process
    uvicorn.run(app, host=host, port=port, log_config=None)
