import os
import socket

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Firebase Cloud Messaging (HTTP v1)
FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID", "")
# Service-account key file; access tokens are minted and refreshed from it
FCM_CREDENTIALS_FILE = os.getenv("FCM_CREDENTIALS_FILE", os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""))
FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]
FCM_TIMEOUT_SECONDS = float(os.getenv("FCM_TIMEOUT_SECONDS", 10))
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# Room lifecycle
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", 600))
SWEEP_INTERVAL_SECONDS = int(os.getenv("SWEEP_INTERVAL_SECONDS", 3600))  # every 60 minutes
SWEEP_CONDITIONAL_DELETE = os.getenv("SWEEP_CONDITIONAL_DELETE", "false").lower() in ("1", "true", "yes")

# Room write event stream
EVENTS_CONSUMER_NAME = os.getenv("EVENTS_CONSUMER_NAME", socket.gethostname())
EVENTS_STREAM_MAXLEN = int(os.getenv("EVENTS_STREAM_MAXLEN", 10000))
EVENTS_BLOCK_MS = int(os.getenv("EVENTS_BLOCK_MS", 1000))

# Join request notification
JOIN_REQUEST_TYPE = "join_request"
JOIN_REQUEST_TITLE = "Join Request"
JOIN_REQUEST_BODY = "{guest_name} wants to join your game"
JOIN_REQUEST_CHANNEL_ID = "join_requests"
DEFAULT_GUEST_NAME = "Someone"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
