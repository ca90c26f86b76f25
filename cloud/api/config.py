from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

ENV_FAMILY_PASSWORD = "FAMILY_PASSWORD"
ENV_TURNSTILE_SECRET = "TURNSTILE_SECRET"
ENV_TOKEN_SECRET = "TOKEN_SECRET"
ENV_DATABASE = "RECIPE_BOX_DB"
ENV_IMAGES_DIR = "RECIPE_BOX_IMAGES"
ENV_TOMBSTONE_RETENTION_DAYS = "TOMBSTONE_RETENTION_DAYS"
ENV_TOKEN_TTL_DAYS = "TOKEN_TTL_DAYS"

DEFAULT_DATABASE = "recipe_box_cloud.db"
DEFAULT_IMAGES_DIR = "images"
DEFAULT_TOMBSTONE_RETENTION_DAYS = 30
# Credentials are effectively permanent; the household re-authenticates only on rotation
DEFAULT_TOKEN_TTL_DAYS = 365 * 100
TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


def _lookup(environ: Mapping[str, str], key: str) -> str:
    """Return ``environ[key]`` trimmed, tolerating keys stored with stray whitespace."""

    value = environ.get(key)
    if value is None:
        value = next((raw for name, raw in environ.items() if name.strip() == key), None)
    return (value or "").strip()


def _positive_int(raw: str, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


@dataclass(slots=True)
class ServiceConfig:
    """Runtime configuration for the recipe service."""

    family_password: str = ""
    turnstile_secret: str = ""
    token_secret: str = ""
    database_path: Path = Path(DEFAULT_DATABASE)
    images_dir: Path = Path(DEFAULT_IMAGES_DIR)
    tombstone_retention_days: int = DEFAULT_TOMBSTONE_RETENTION_DAYS
    token_ttl_days: int = DEFAULT_TOKEN_TTL_DAYS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServiceConfig:
        env = os.environ if environ is None else environ
        password = _lookup(env, ENV_FAMILY_PASSWORD)
        return cls(
            family_password=password,
            turnstile_secret=_lookup(env, ENV_TURNSTILE_SECRET),
            token_secret=_lookup(env, ENV_TOKEN_SECRET) or password,
            database_path=Path(_lookup(env, ENV_DATABASE) or DEFAULT_DATABASE),
            images_dir=Path(_lookup(env, ENV_IMAGES_DIR) or DEFAULT_IMAGES_DIR),
            tombstone_retention_days=_positive_int(
                _lookup(env, ENV_TOMBSTONE_RETENTION_DAYS), DEFAULT_TOMBSTONE_RETENTION_DAYS
            ),
            token_ttl_days=_positive_int(_lookup(env, ENV_TOKEN_TTL_DAYS), DEFAULT_TOKEN_TTL_DAYS),
        )

    @property
    def signing_secret(self) -> str:
        return self.token_secret or self.family_password

    @property
    def provisioned(self) -> bool:
        return bool(self.family_password)

    @property
    def challenge_required(self) -> bool:
        return bool(self.turnstile_secret)

    @property
    def tombstone_retention_ms(self) -> int:
        return self.tombstone_retention_days * 86_400_000

    @property
    def token_ttl_ms(self) -> int:
        return self.token_ttl_days * 86_400_000
