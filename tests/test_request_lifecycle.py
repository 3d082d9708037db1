from datetime import datetime, timedelta

import pytest

from conftest import iso, make_request
from models import db, User, HelpRequest, Bid, REQUEST_OPEN, REQUEST_CLOSED
from utils.bid_service import BidService
from utils.error_handling import Forbidden, NotFound
from utils.request_service import RequestService


def _user(user_id):
    return db.session.get(User, user_id)


class TestRequestService:
    def test_create_starts_open(self, users, app_ctx):
        help_request = make_request(_user(users.owner))
        assert help_request.status == REQUEST_OPEN
        assert help_request.type_of_help.name == 'IT Support'
        assert help_request.bids == []

    def test_update_is_owner_only(self, users, app_ctx):
        help_request = make_request(_user(users.owner))
        with pytest.raises(Forbidden):
            RequestService.update(help_request.id, _user(users.bidder), {'title': 'Hijacked'})

    def test_partial_update_keeps_other_fields(self, users, app_ctx):
        help_request = make_request(_user(users.owner))
        RequestService.update(help_request.id, _user(users.owner), {'offered_amount': 250})
        reloaded = db.session.get(HelpRequest, help_request.id)
        assert reloaded.offered_amount == 250
        assert reloaded.title == 'Fix my laptop'

    def test_close_from_any_status_is_repeatable(self, users, app_ctx):
        owner = _user(users.owner)
        help_request = make_request(owner)
        bid = BidService.place(_user(users.bidder), help_request.id, 150)
        BidService.accept(bid.id, owner)

        RequestService.close(help_request.id, owner)
        RequestService.close(help_request.id, owner)
        closed = db.session.get(HelpRequest, help_request.id)
        assert closed.status == REQUEST_CLOSED
        assert closed.closed_at is not None

    def test_extend_deadline_accepts_any_timestamp(self, users, app_ctx):
        owner = _user(users.owner)
        help_request = make_request(owner)
        earlier = datetime.utcnow() - timedelta(days=1)
        RequestService.extend_response_deadline(help_request.id, owner, earlier)
        assert db.session.get(HelpRequest, help_request.id).response_deadline == earlier

    def test_delete_removes_bids(self, users, app_ctx):
        owner = _user(users.owner)
        help_request = make_request(owner)
        BidService.place(_user(users.bidder), help_request.id, 150)
        BidService.place(_user(users.other), help_request.id, 170)

        RequestService.delete(help_request.id, owner)
        assert db.session.get(HelpRequest, help_request.id) is None
        assert Bid.query.count() == 0

    def test_missing_request(self, users, app_ctx):
        with pytest.raises(NotFound):
            RequestService.get(9999)


class TestBestBid:
    def test_close_to_offer_is_marked_up(self, users, app_ctx):
        owner = _user(users.owner)
        help_request = make_request(owner, offered_amount=100)
        BidService.place(_user(users.bidder), help_request.id, 95)
        BidService.place(_user(users.other), help_request.id, 99)

        best = RequestService.best_bid(help_request.id, owner)
        assert best['bid'].bid_amount == 95
        assert best['adjustedBidAmount'] == pytest.approx(104.50)

    def test_low_bid_falls_back_to_offer(self, users, app_ctx):
        owner = _user(users.owner)
        help_request = make_request(owner, offered_amount=100)
        BidService.place(_user(users.bidder), help_request.id, 80)

        best = RequestService.best_bid(help_request.id, owner)
        assert best['adjustedBidAmount'] == 100.00

    def test_only_pending_bids_count(self, users, app_ctx):
        owner = _user(users.owner)
        help_request = make_request(owner, offered_amount=100)
        cheap = BidService.place(_user(users.bidder), help_request.id, 50)
        BidService.place(_user(users.other), help_request.id, 92)
        BidService.reject(cheap.id, owner)

        best = RequestService.best_bid(help_request.id, owner)
        assert best['bid'].bid_amount == 92
        assert best['adjustedBidAmount'] == pytest.approx(101.2)

    def test_no_pending_bids(self, users, app_ctx):
        owner = _user(users.owner)
        help_request = make_request(owner)
        assert RequestService.best_bid(help_request.id, owner) is None

    def test_owner_only(self, users, app_ctx):
        help_request = make_request(_user(users.owner))
        with pytest.raises(Forbidden):
            RequestService.best_bid(help_request.id, _user(users.bidder))


class TestRequestRoutes:
    def test_create_requires_login(self, app, request_body):
        response = app.test_client().post('/api/requests', json=request_body)
        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_create_and_broadcast(self, owner_client, request_body, services):
        response = owner_client.post('/api/requests', json=request_body)
        assert response.status_code == 201
        created = response.get_json()['request']
        assert created['status'] == 'Open'
        assert created['requester']['first_name'] == 'Olivia'

        event, room, payload = services.live.events[-1]
        assert event == 'newRequest'
        assert room is None
        assert payload['id'] == created['id']

    def test_create_validates_fields(self, owner_client, request_body):
        request_body['offered_amount'] = -5
        request_body['response_deadline'] = 'next tuesday'
        response = owner_client.post('/api/requests', json=request_body)
        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert 'offered_amount' in errors
        assert 'response_deadline' in errors

    def test_create_rejects_non_string_text(self, owner_client, request_body):
        request_body['title'] = 12345
        request_body['description'] = {'text': 'nested'}
        response = owner_client.post('/api/requests', json=request_body)
        assert response.status_code == 400
        body = response.get_json()
        assert body['message'] == 'Must be a string'
        assert body['errors']['title'][0] == 'Must be a string'
        assert body['errors']['description'][0] == 'Must be a string'

    def test_update_rejects_non_string_title(self, owner_client, request_body):
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']
        response = owner_client.put(f"/api/requests/{created['id']}", json={'title': 42})
        assert response.status_code == 400
        assert response.get_json()['errors']['title'] == ['Must be a string']

    def test_create_rejects_non_object_body(self, owner_client):
        response = owner_client.post('/api/requests', json=[1, 2])
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Request body must be a JSON object'

    def test_create_rejects_unparseable_json(self, owner_client):
        response = owner_client.post('/api/requests', data='{"title": ', content_type='application/json')
        assert response.status_code == 400

    def test_create_rejects_unknown_category(self, owner_client, request_body):
        request_body['type_of_help'] = 9999
        response = owner_client.post('/api/requests', json=request_body)
        assert response.status_code == 400
        assert response.get_json()['message'] == 'Invalid Type of Help ID'

    def test_public_list_and_get(self, app, owner_client, request_body):
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']
        anonymous = app.test_client()

        listing = anonymous.get('/api/requests').get_json()['requests']
        assert [r['id'] for r in listing] == [created['id']]

        detail = anonymous.get(f"/api/requests/{created['id']}").get_json()['request']
        assert detail['type_of_help']['name'] == 'IT Support'
        assert anonymous.get('/api/requests/9999').status_code == 404

    def test_update_forbidden_for_non_owner(self, owner_client, bidder_client, request_body):
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']
        response = bidder_client.put(f"/api/requests/{created['id']}", json={'title': 'Mine now'})
        assert response.status_code == 403

    def test_update_rejects_blank_title(self, owner_client, request_body):
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']
        response = owner_client.put(f"/api/requests/{created['id']}", json={'title': '   '})
        assert response.status_code == 400

    def test_cancel_stores_reason(self, owner_client, request_body):
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']
        response = owner_client.put(f"/api/requests/{created['id']}/cancel", json={'reason': 'Fixed it myself'})
        body = response.get_json()['request']
        assert body['status'] == 'Closed'
        assert body['cancellation_reason'] == 'Fixed it myself'

    def test_extend_response_time(self, owner_client, request_body):
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']
        new_deadline = datetime.utcnow().replace(microsecond=0) + timedelta(days=2)
        response = owner_client.put(f"/api/requests/{created['id']}/response-time",
                                    json={'new_response_deadline': iso(new_deadline)})
        assert response.status_code == 200
        assert response.get_json()['request']['response_deadline'] == new_deadline.isoformat()

    def test_user_requests_lists_own_only(self, owner_client, bidder_client, request_body):
        owner_client.post('/api/requests', json=request_body)
        assert len(owner_client.get('/api/requests/user-requests').get_json()['requests']) == 1
        assert bidder_client.get('/api/requests/user-requests').get_json()['requests'] == []

    def test_bidders_endpoint(self, owner_client, bidder_client, request_body):
        request_body['offered_amount'] = 100
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']

        empty = owner_client.get(f"/api/requests/{created['id']}/bidders").get_json()
        assert empty['bids'] == []

        bidder_client.post('/api/bids', json={'help_request_id': created['id'], 'bid_amount': 95})
        best = owner_client.get(f"/api/requests/{created['id']}/bidders").get_json()
        assert best['adjustedBidAmount'] == pytest.approx(104.5)
        assert best['bid']['bid_amount'] == 95
        assert best['explanation']

    def test_delete(self, owner_client, request_body):
        created = owner_client.post('/api/requests', json=request_body).get_json()['request']
        assert owner_client.delete(f"/api/requests/{created['id']}").status_code == 200
        assert owner_client.get(f"/api/requests/{created['id']}").status_code == 404
