from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from routers.rooms import rooms_router
from backend import redis_backend
from constants import SWEEP_CONDITIONAL_DELETE, SWEEP_INTERVAL_SECONDS
from dispatcher import NotificationDispatcher
from push import FcmPushClient, load_credentials
from sweeper import ExpirySweeper
from workers import listen_to_room_events, run_sweep_loop
import asyncio
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        redis_backend.ping()
        logger.info("Redis client connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
        raise

    # Background tasks: one listener for room write events, one sweep timer
    tasks = [
        asyncio.create_task(listen_to_room_events(redis_backend, app.state.dispatcher)),
        asyncio.create_task(run_sweep_loop(app.state.sweeper, SWEEP_INTERVAL_SECONDS)),
    ]
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Background tasks stopped")


app = FastAPI(lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(rooms_router)

app.state.dispatcher = NotificationDispatcher(FcmPushClient(load_credentials()))
app.state.sweeper = ExpirySweeper(redis_backend, conditional_delete=SWEEP_CONDITIONAL_DELETE)

logger.info("FastAPI application initialized")


@app.get("/health")
def health():
    try:
        redis_backend.ping()
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Redis unavailable")
    return {"status": "ok"}
