"""
Deployment-time seeding of the global leave catalogue.

    python -m scripts.seed_leave_defaults
    python -m scripts.seed_leave_defaults --tenant 7 --tenant 9   # also default workflows

Safe to re-run: only missing rows are inserted.
"""
import argparse
import logging

from leave_engine.core.logging import setup_logging
from leave_engine.database import SessionLocal, init_db
from leave_engine.services.defaults import seed_default_workflows, seed_global_defaults

logger = logging.getLogger(__name__)


def seed(tenant_ids):
    init_db()
    db = SessionLocal()
    try:
        created = seed_global_defaults(db)
        logger.info(f"Global leave catalogue ready ({created} new types)")
        for tenant_id in tenant_ids:
            workflows = seed_default_workflows(db, tenant_id)
            logger.info(f"Tenant {tenant_id}: {workflows} default workflows created")
    finally:
        db.close()


if __name__ == "__main__":
    setup_logging()
    parser = argparse.ArgumentParser(description="Seed default leave types, policies and workflows")
    parser.add_argument("--tenant", type=int, action="append", default=[], help="Tenant id to seed workflows for")
    args = parser.parse_args()
    seed(args.tenant)
