"""Project-wide named constants.

Endpoint paths and storage keys are fixed by the ListGenie backend and by
tokens already persisted on user machines; changing them orphans stored
sessions.
"""

# Keyring entries under GatewayConfig.keyring_service
ACCESS_TOKEN_KEY: str = "access_token"
REFRESH_TOKEN_KEY: str = "refresh_token"

# Backend endpoints, relative to GatewayConfig.api_url
REFRESH_PATH: str = "/auth/refresh"
UPLOAD_PATH: str = "/upload"
STATUS_PATH: str = "/status/{job_id}"
AUTH_STATUS_PATH: str = "/auth/status"
HEALTH_PATH: str = "/health"
SETTINGS_PATH: str = "/settings"

# Multipart field carrying the image files
UPLOAD_FIELD: str = "images"

ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {"image/jpeg", "image/png", "image/webp"}
)
