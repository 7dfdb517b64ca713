"""
Runs a single debt reconciliation pass and prints the summary.

Meant to be invoked by an external scheduler, e.g. a crontab entry:

    */15 * * * * cd /srv/innopay && python scripts/run_reconciliation.py

Exits 0 when every eligible debt was paid, 1 when some are still pending.
"""
import sys
import os
import asyncio
import json
import logging

# Allow running from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from innopay.config import settings
from innopay.database import engine, SessionLocal
from innopay.dependencies import get_ledger_client
from innopay.services.debts import DebtLedger
from innopay.services.reconciliation import ReconciliationWorker
from innopay import models


async def main() -> int:
    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        worker = ReconciliationWorker(get_ledger_client(), DebtLedger(db))
        summary = await worker.run_reconciliation_pass()
    finally:
        db.close()

    report = summary.as_dict()
    report["failed_debts"] = [
        {"debt_id": f.debt_id, "error": f.error} for f in summary.failures
    ]
    print(json.dumps(report, indent=2))
    return 0 if summary.still_pending == 0 else 1


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(main()))
