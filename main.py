# Production entry point: API server, live channel and deadline scheduler
import atexit
import os
import signal
import sys

from app import create_app
from models import db
from utils.live_channel import socketio
from utils.scheduler import DeadlineCloser

app = create_app()
deadline_closer = DeadlineCloser(app, interval_minutes=app.config['DEADLINE_SWEEP_MINUTES'])


def cleanup_on_exit():
    """Stop the scheduler thread when the process exits"""
    deadline_closer.stop()
    app.logger.info("Deadline scheduler stopped")


def signal_handler(signum, frame):
    app.logger.info(f"Received signal {signum}, shutting down gracefully...")
    cleanup_on_exit()
    sys.exit(0)


if __name__ == '__main__':
    atexit.register(cleanup_on_exit)
    signal.signal(signal.SIGINT, signal_handler)  # Ctrl+C
    signal.signal(signal.SIGTERM, signal_handler)  # Termination signal

    with app.app_context():
        db.create_all()

    deadline_closer.start()

    port = int(os.environ.get('PORT', 5000))
    host = os.environ.get('HOST', '0.0.0.0')
    socketio.run(app, host=host, port=port, debug=app.config['ENV'] != 'production',
                 use_reloader=False, allow_unsafe_werkzeug=True)
