from datetime import datetime, timedelta

from conftest import make_request
from models import db, User, HelpRequest, REQUEST_OPEN, REQUEST_CLOSED
from utils.scheduler import close_overdue_requests, DeadlineCloser


def test_overdue_open_request_is_closed(users, app_ctx):
    owner = db.session.get(User, users.owner)
    overdue = make_request(owner, response_in=timedelta(minutes=-5))
    current = make_request(owner, response_in=timedelta(hours=2), title='Paint the fence')

    assert close_overdue_requests() == 1

    assert db.session.get(HelpRequest, overdue.id).status == REQUEST_CLOSED
    assert db.session.get(HelpRequest, overdue.id).closed_at is not None
    assert db.session.get(HelpRequest, current.id).status == REQUEST_OPEN


def test_already_closed_requests_are_skipped(users, app_ctx):
    owner = db.session.get(User, users.owner)
    make_request(owner, response_in=timedelta(minutes=-5))

    assert close_overdue_requests() == 1
    assert close_overdue_requests() == 0


def test_uses_supplied_clock(users, app_ctx):
    owner = db.session.get(User, users.owner)
    help_request = make_request(owner, response_in=timedelta(hours=1))

    assert close_overdue_requests(now=datetime.utcnow() + timedelta(hours=2)) == 1
    assert db.session.get(HelpRequest, help_request.id).status == REQUEST_CLOSED


def test_deadline_closer_run_once(app, users):
    with app.app_context():
        make_request(db.session.get(User, users.owner), response_in=timedelta(minutes=-1))

    closer = DeadlineCloser(app, interval_minutes=1)
    assert closer.run_once() == 1

    with app.app_context():
        assert HelpRequest.query.filter_by(status=REQUEST_CLOSED).count() == 1


def test_deadline_closer_start_and_stop(app):
    closer = DeadlineCloser(app, interval_minutes=1)
    closer.start()
    assert closer._thread.is_alive()
    assert len(closer._scheduler.jobs) == 1

    closer.stop()
    assert not closer._thread.is_alive()
    assert closer._scheduler.jobs == []
