REDIS_META_KEY = "room:meta:{slug}" # room id - room document hash
REDIS_EXPIRY_INDEX_KEY = "rooms:expiry" # sorted set: room id scored by expiresAt (epoch seconds)
REDIS_EVENTS_STREAM = "rooms:events" # stream carrying one write event per room write
REDIS_EVENTS_GROUP = "room-dispatchers" # consumer group reading rooms:events

# **Example `room:meta:{id}` hash fields**
# - `status` = waiting | pendingJoin | active | finished
# - `hostName` = display string
# - `hostFcmToken` = device push token (optional)
# - `pendingGuestName` = display string, only while status is pendingJoin
# - `createdAt` = ISO timestamp
# - `expiresAt` = ISO timestamp (no native key TTL, expiry depends on status)

# **Example `rooms:events` entry**
# event = {"event_id": "...", "room_id": "...", "before": {...} | null, "after": {...}}
