from __future__ import annotations

import logging
import os

from orderdesk.cli import run_cli
from orderdesk.config import ConfigError, load_config
from orderdesk.db import Db
from orderdesk.errors import StoreFailure
from orderdesk.wiring import Repositories, build_services


def main() -> int:
    try:
        cfg = load_config()
        logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        db = Db(cfg.db)
        services = build_services(Repositories.postgres(), cfg.business)
        run_cli(db, services, actor_id=os.environ.get("ORDERDESK_USER_ID"))
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except StoreFailure as e:
        print(f"[DB ERROR] {e}")
        return 3
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
