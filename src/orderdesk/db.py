from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass

import psycopg
from psycopg import Connection

from .config import DbConfig
from .errors import StoreFailure


@dataclass(frozen=True)
class Db:
    cfg: DbConfig

    def connect(self) -> Connection:
        try:
            return psycopg.connect(
                host=self.cfg.host,
                port=self.cfg.port,
                dbname=self.cfg.name,
                user=self.cfg.user,
                password=self.cfg.password,
                sslmode=self.cfg.sslmode,
                autocommit=True,
            )
        except Exception as e:
            raise StoreFailure(
                "Cannot connect to database. Check config.toml [db] and that PostgreSQL is running."
            ) from e

    @contextmanager
    def session(self) -> Connection:
        # autocommit: every store call commits on its own
        conn = self.connect()
        try:
            yield conn
        except psycopg.Error as e:
            raise StoreFailure(f"Database call failed: {e}") from e
        finally:
            conn.close()
