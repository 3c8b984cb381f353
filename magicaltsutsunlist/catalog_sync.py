import argparse
import logging
import time
from typing import List

from magicaltsutsunlist.catalog import CatalogStore, open_client
from magicaltsutsunlist.db import SessionLocal, engine
from magicaltsutsunlist.models import Base
from magicaltsutsunlist.services import KINDS, SyncReport, get_kind, sync_catalog

logger = logging.getLogger(__name__)


def sync_once(catalog: CatalogStore, kinds: List[str]) -> List[SyncReport]:
    db = SessionLocal()
    try:
        reports = []
        for name in kinds:
            logger.info("Starting %s reference sync.", name)
            reports.append(sync_catalog(db, catalog, get_kind(name)))
        return reports
    finally:
        db.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(
        description="Copy catalog ids from MongoDB into the relational reference tables."
    )
    parser.add_argument(
        "--kind",
        choices=[*KINDS, "all"],
        default="all",
        help="Catalog to synchronize.",
    )
    parser.add_argument(
        "--interval-hours",
        type=float,
        default=None,
        help="Keep running and repeat the sync every N hours.",
    )
    args = parser.parse_args()
    kinds = list(KINDS) if args.kind == "all" else [args.kind]

    Base.metadata.create_all(bind=engine)
    client = open_client()
    try:
        catalog = CatalogStore.from_client(client)
        while True:
            for report in sync_once(catalog, kinds):
                print(
                    f"{report.kind} sync completed. {report.total} items, "
                    f"inserted {report.inserted}, failed {report.failed}."
                )
            if args.interval_hours is None:
                return
            time.sleep(max(args.interval_hours, 0.25) * 3600)
    finally:
        client.close()


if __name__ == "__main__":
    main()
