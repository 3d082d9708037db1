"""
Background deadline sweep: closes help requests whose response deadline has passed
"""

import logging
import threading
import time
from datetime import datetime
import schedule
from sqlalchemy.exc import SQLAlchemyError
from models import db, HelpRequest, REQUEST_CLOSED

logger = logging.getLogger(__name__)


def close_overdue_requests(now=None):
    """Close every request past its response deadline that is not Closed yet.

    Items are committed one by one; a failing item is logged and skipped.
    Returns the number of requests closed.
    """
    now = now or datetime.utcnow()
    overdue = HelpRequest.query.filter(
        HelpRequest.response_deadline <= now,
        HelpRequest.status != REQUEST_CLOSED
    ).all()

    closed = 0
    for help_request in overdue:
        try:
            help_request.status = REQUEST_CLOSED
            help_request.closed_at = now
            db.session.commit()
            closed += 1
            logger.info(f"Help request {help_request.id} closed: response deadline passed")
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to close help request {help_request.id}: {str(e)}")

    logger.info(f"Deadline sweep closed {closed} of {len(overdue)} overdue request(s)")
    return closed


class DeadlineCloser:
    """Runs close_overdue_requests on a fixed interval in a daemon thread"""

    def __init__(self, app, interval_minutes=1):
        self.app = app
        self.interval_minutes = interval_minutes
        self._scheduler = schedule.Scheduler()
        self._running = False
        self._thread = None

    def run_once(self):
        with self.app.app_context():
            try:
                return close_overdue_requests()
            except Exception as e:
                logger.error(f"Deadline sweep failed: {str(e)}", exc_info=True)
                return 0
            finally:
                # Background threads must not hold on to connections
                db.session.remove()

    def start(self):
        if self._thread and self._thread.is_alive():
            return

        self._scheduler.clear()
        self._scheduler.every(self.interval_minutes).minutes.do(self.run_once)
        self._running = True

        def run_scheduler():
            try:
                while self._running:
                    self._scheduler.run_pending()
                    time.sleep(1)
            except Exception as e:
                logger.error(f"Scheduler thread error: {e}")
            finally:
                logger.info("Deadline scheduler thread stopped")

        self._thread = threading.Thread(target=run_scheduler, name='deadline-closer', daemon=True)
        self._thread.start()
        logger.info(f"Deadline scheduler started (every {self.interval_minutes} minute(s))")

    def stop(self):
        """Stop the scheduler thread gracefully"""
        self._running = False
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._scheduler.clear()
