from __future__ import annotations

DOMAIN = "recipe_box"

# Local store entity types
STORE_RECIPES = "recipes"
STORE_SHOPPING = "shopping"
STORE_PLANS = "plans"
STORE_SETTINGS = "settings"

ENTITY_TYPES: tuple[str, ...] = (
    STORE_RECIPES,
    STORE_SHOPPING,
    STORE_PLANS,
    STORE_SETTINGS,
)
# Only recipes participate in remote sync
SHARED_ENTITY_TYPES: frozenset[str] = frozenset({STORE_RECIPES})

SETTINGS_ID = "app-settings"
DEFAULT_SETTINGS: dict[str, object] = {"theme": "system", "autoSync": True}

# Entity field names as they travel on the wire
FIELD_ID = "id"
FIELD_UPDATED_AT = "updatedAt"
FIELD_SHARED = "shareToFamily"
FIELD_DELETED = "deleted"
FIELD_FAVORITE = "favorite"

# Fields that describe a device-local preference and survive a pull merge
LOCAL_PREFERENCE_FIELDS: tuple[str, ...] = (FIELD_FAVORITE,)

# Client options
CONF_BASE_URL = "base_url"
CONF_STORE_PATH = "store_path"
CONF_SYNC_INTERVAL = "sync_interval"
CONF_REQUEST_TIMEOUT = "request_timeout"

DEFAULT_SYNC_INTERVAL = 300
MIN_SYNC_INTERVAL = 15
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_STORE_PATH = "recipe_box.db"

# Sync metadata keys
META_CURSOR = "cursor"
META_CREDENTIAL = "credential"

TOMBSTONE_RETENTION_DAYS = 30
