import sys
import traceback

import tischplan.models  # noqa: F401
from tischplan.database import Base, SessionLocal, engine
from tischplan.services.notification_service import sweep
from tischplan.services.table_state import sync_table_statuses
from tischplan.utils.logging_config import setup_logging
from tischplan.utils.timeutils import utcnow

logger = setup_logging()


def main() -> int:
    """
    Führt Status-Abgleich und Erinnerungs-Sweep einmal aus.
    Gibt Exit-Code zurück: 0 = Erfolg, 1 = Fehler
    """
    logger.info("Status-Abgleich gestartet (Cronjob)")

    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        now = utcnow()
        summary = sync_table_statuses(db, now)
        logger.info(f"Abgleich: {summary['checked']} Tische geprüft, {summary['updated']} korrigiert")

        alerts = sweep(db, now)
        logger.info(f"Erinnerungen: {alerts['upcoming']} Buchungen, {alerts['long_waiting']} Wartende")
        return 0

    except Exception as e:
        logger.error(f"Abgleich fehlgeschlagen: {e}")
        logger.error(traceback.format_exc())
        return 1
    finally:
        db.close()
        logger.info("Status-Abgleich beendet")


if __name__ == "__main__":
    sys.exit(main())
