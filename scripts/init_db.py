from evidence_ledger.config import get_settings
from evidence_ledger.store.db import init_db
import logging

logging.basicConfig(level=logging.INFO)

if __name__ == "__main__":
    logging.info(f"Initializing ledger database at {get_settings().DB_PATH}...")
    init_db()
    logging.info("Database initialized.")
