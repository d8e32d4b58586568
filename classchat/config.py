"""Runtime configuration for the chat service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import resolve_store_path
from .sessions import DEFAULT_TOKEN_TTL, generate_secret

logger = logging.getLogger("classchat.config")

DEFAULT_ADMIN_PASSWORD = "12345"
DEFAULT_DEV_USERNAMES = ("dev1", "dev2")


@dataclass(frozen=True)
class Settings:
    """Everything the application factory needs to build the service."""

    store_path: Path
    token_secret: str
    bundled_store_path: Optional[Path] = None
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    default_admin_password: str = DEFAULT_ADMIN_PASSWORD
    dev_usernames: Tuple[str, ...] = DEFAULT_DEV_USERNAMES
    cors_origins: Tuple[str, ...] = ("*",)


def _split_list(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError(f"Expected a list or comma separated string, got {value!r}")
    return tuple(item.strip() for item in items if item.strip())


def _resolve_path(value: object, base_path: Optional[Path]) -> Path:
    raw = Path(str(value)).expanduser()
    if not raw.is_absolute() and base_path is not None:
        raw = base_path / raw
    return raw.resolve(strict=False)


def _parse_ttl_days(value: object) -> timedelta:
    try:
        days = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Token lifetime must be a number of days, got {value!r}") from exc
    if days <= 0:
        raise ValueError("Token lifetime must be positive")
    return timedelta(days=days)


def _setting(env: Mapping[str, str], raw: Dict[str, object], env_key: str, file_key: str) -> object:
    file_value = raw.pop(file_key, None)
    env_value = env.get(env_key)
    return env_value if env_value is not None else file_value


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load the optional YAML configuration file."""

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping at the top level")
    return raw


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from a YAML file with environment overrides."""

    env = os.environ if environ is None else environ
    if config_path is None and env.get("CLASSCHAT_CONFIG"):
        config_path = Path(env["CLASSCHAT_CONFIG"]).expanduser()

    raw: Dict[str, object] = {}
    base_path: Optional[Path] = None
    if config_path is not None:
        raw = load_config_file(config_path)
        base_path = config_path.resolve(strict=False).parent

    store_value = _setting(env, raw, "CLASSCHAT_STORE_PATH", "store_path")
    if store_value:
        store_path = _resolve_path(store_value, None if env.get("CLASSCHAT_STORE_PATH") else base_path)
    else:
        store_path = resolve_store_path(None)

    bundled_value = _setting(env, raw, "CLASSCHAT_BUNDLED_STORE", "bundled_store_path")
    bundled_path = _resolve_path(bundled_value, base_path) if bundled_value else None

    secret = _setting(env, raw, "CLASSCHAT_TOKEN_SECRET", "token_secret")
    if not secret:
        logger.warning(
            "CLASSCHAT_TOKEN_SECRET is not set; generated a per-process secret so"
            " sessions will not survive a restart."
        )
        secret = generate_secret()

    ttl_value = _setting(env, raw, "CLASSCHAT_TOKEN_TTL_DAYS", "token_ttl_days")
    token_ttl = _parse_ttl_days(ttl_value) if ttl_value is not None else DEFAULT_TOKEN_TTL

    admin_password = _setting(env, raw, "CLASSCHAT_ADMIN_PASSWORD", "admin_password")

    dev_value = _setting(env, raw, "CLASSCHAT_DEV_USERNAMES", "dev_usernames")
    dev_usernames = (
        tuple(name.lower() for name in _split_list(dev_value)) if dev_value is not None else DEFAULT_DEV_USERNAMES
    )

    cors_value = _setting(env, raw, "CLASSCHAT_CORS_ORIGINS", "cors_origins")
    cors_origins = _split_list(cors_value) if cors_value is not None else ("*",)

    if raw:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(sorted(map(str, raw))))

    return Settings(
        store_path=store_path,
        token_secret=str(secret),
        bundled_store_path=bundled_path,
        token_ttl=token_ttl,
        default_admin_password=str(admin_password or DEFAULT_ADMIN_PASSWORD),
        dev_usernames=dev_usernames,
        cors_origins=cors_origins or ("*",),
    )


__all__ = ["Settings", "load_config_file", "load_settings", "DEFAULT_ADMIN_PASSWORD", "DEFAULT_DEV_USERNAMES"]
