from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONFIG_PATH = "config.toml"
CONFIG_ENV_VAR = "ORDERDESK_CONFIG"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


@dataclass(frozen=True)
class BusinessConfig:
    default_sales_commission_percent: float = 5.0
    approval_roles: tuple[str, ...] = ("manager", "admin")


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    db: DbConfig
    business: BusinessConfig


def config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)


def load_config(path: str | Path | None = None) -> AppConfig:
    p = Path(path) if path is not None else config_path()
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    try:
        app = data.get("app", {})
        db = data["db"]
        business = data.get("business", {})

        rate = float(business.get("default_sales_commission_percent", 5.0))
        if not 0 <= rate <= 100:
            raise ValueError("default_sales_commission_percent must be within 0..100")
        roles = business.get("approval_roles", ["manager", "admin"])
        if isinstance(roles, str) or not all(isinstance(r, str) for r in roles):
            raise ValueError("approval_roles must be a list of role names")

        return AppConfig(
            name=str(app.get("name", "OrderDesk")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            db=DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            ),
            business=BusinessConfig(
                default_sales_commission_percent=rate,
                approval_roles=tuple(roles),
            ),
        )
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e
