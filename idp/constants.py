ACCESS_TOKEN_EXPIRY_SECONDS = 120
ID_TOKEN_EXPIRY_SECONDS = 3600
REFRESH_TOKEN_EXPIRY_DAYS = 7
AUTH_CODE_EXPIRY_SECONDS = 600
SESSION_DURATION_SECONDS = 86400
FEDERATION_STATE_EXPIRY_SECONDS = 600

JWT_ALGORITHM = "HS256"
TOKEN_TYPE = "Bearer"
DEFAULT_SCOPE = "openid profile email"
SUPPORTED_SCOPES = ["openid", "profile", "email"]

SESSION_COOKIE = "session_id"
FEDERATION_STATE_COOKIE = "federation_state"

# Stored in users.password_hash for accounts that can only sign in upstream.
OAUTH_USER_NO_PASSWORD = "OAUTH_USER_NO_LOCAL_PASSWORD"
MIN_PASSWORD_LENGTH = 10
USER_ROLES = ("user", "admin")

CLEANUP_INTERVAL_SECONDS = 3600

DEBUG_HISTORY_LIMIT = 500
DEBUG_QUEUE_SIZE = 100
DEBUG_MAX_TOPICS = 1000
