from unittest.mock import patch

from forms_approval.errors import StoreError
from forms_approval.models import FormEntry, Submission
from forms_approval.models.submission import VISITOR_IP_LENGTH
from forms_approval.services import session_tracker

COOKIE = "forms_approval_session"


def _add_entries(db):
    db.add(FormEntry(entry_id=1, ip_address="203.0.113.9", user_agent="Mozilla/5.0"))
    db.add(FormEntry(entry_id=2, ip_address="203.0.113.9", user_agent="Mozilla/5.0"))
    db.commit()


def _submission(form_id, entry_id, fields):
    return {"entry_id": entry_id, "form_id": form_id, "fields": fields, "page": "/login/"}


def _callback(data, callback_id="cb-1"):
    return {
        "update_id": 1,
        "callback_query": {"id": callback_id, "from": {"id": 42, "first_name": "Operator"}, "data": data},
    }


class TestApprovalFlow:
    def test_two_forms_then_approve(self, client, db, telegram):
        _add_entries(db)

        response = client.post("/visitor/page-view", json={"path": "/login/"})
        assert response.status_code == 200
        session_id = response.json()["session_id"]
        assert response.json()["redirect"] is False
        assert response.cookies.get(COOKIE) == session_id

        first = client.post(
            "/forms/submissions", json=_submission(1, 1, [{"name": "Email", "value": "a@b.c"}])
        )
        second = client.post(
            "/forms/submissions", json=_submission(2, 2, [{"name": "Card", "value": "4111"}])
        )

        assert first.json()["success"] is True
        assert second.json()["success"] is True
        telegram.send_message.assert_called_once()
        telegram.edit_message.assert_called_once()
        edited_text = telegram.edit_message.call_args.args[2]
        assert "🌐 Visitor IP: 203.0.113.9" in edited_text
        assert "Form: Login" in edited_text and "Form: Card" in edited_text

        response = client.post("/telegram-webhook", json=_callback(f"action:approve:{session_id}"))
        assert response.status_code == 200
        assert response.text == "Callback processed"
        telegram.answer_callback_query.assert_called_once_with("cb-1")

        response = client.post("/visitor/check-redirect")
        assert response.json()["redirect"] == "https://example.com/approve"
        response = client.post("/visitor/check-redirect")
        assert response.json()["redirect"] is False

    def test_identity_pinned_to_session(self, client, db):
        db.add(FormEntry(entry_id=1, ip_address="203.0.113.9", user_agent="Mozilla/5.0"))
        db.add(FormEntry(entry_id=2, ip_address="198.51.100.7", user_agent="Mozilla/5.0"))
        db.commit()
        client.post("/visitor/page-view", json={"path": "/"})

        client.post("/forms/submissions", json=_submission(1, 1, [{"name": "Email", "value": "a@b.c"}]))
        client.post("/forms/submissions", json=_submission(2, 2, [{"name": "Card", "value": "4111"}]))

        assert {row[0] for row in db.query(Submission.visitor_ip).all()} == {"203.0.113.9"}


class TestFormSubmissions:
    def test_unconfigured_form(self, client, db, telegram):
        response = client.post("/forms/submissions", json=_submission(99, None, [{"name": "x", "value": "y"}]))

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert db.query(Submission).count() == 0
        telegram.send_message.assert_not_called()

    def test_empty_fields_rejected(self, client, db):
        response = client.post("/forms/submissions", json=_submission(1, None, [{"name": "x", "value": "  "}]))

        assert response.status_code == 422
        assert db.query(Submission).count() == 0

    def test_unknown_entry_records_unknown_identity(self, client, db):
        response = client.post("/forms/submissions", json=_submission(1, 404, [{"name": "x", "value": "y"}]))

        assert response.json()["success"] is True
        assert db.query(Submission.visitor_ip).scalar() == "Unknown"

    def test_overlong_entry_address_is_truncated(self, client, db):
        address = "2001:db8:" + "a" * 60
        db.add(FormEntry(entry_id=7, ip_address=address, user_agent="Mozilla/5.0"))
        db.commit()

        response = client.post("/forms/submissions", json=_submission(1, 7, [{"name": "x", "value": "y"}]))

        assert response.json()["success"] is True
        assert db.query(Submission.visitor_ip).scalar() == address[:VISITOR_IP_LENGTH]

    def test_issues_session_cookie(self, client):
        response = client.post("/forms/submissions", json=_submission(1, None, [{"name": "x", "value": "y"}]))
        assert response.cookies.get(COOKIE)

    def test_store_failure_maps_to_500(self, client):
        with patch("forms_approval.routers.forms.process_submission", side_effect=StoreError("db down")):
            response = client.post("/forms/submissions", json=_submission(1, None, [{"name": "x", "value": "y"}]))

        assert response.status_code == 500
        assert response.json() == {"detail": "Storage unavailable"}

    def test_delivery_failure_still_records(self, client, db, telegram):
        telegram.send_message.return_value = {"ok": False, "description": "timed out"}

        response = client.post("/forms/submissions", json=_submission(1, None, [{"name": "x", "value": "y"}]))

        assert response.json()["success"] is True
        assert db.query(Submission).count() == 1


class TestVisitorEndpoints:
    def test_heartbeat_requires_session(self, client):
        response = client.post("/visitor/heartbeat")
        assert response.status_code == 400

    def test_heartbeat_with_session(self, client):
        client.cookies.set(COOKIE, "sess-1")
        response = client.post("/visitor/heartbeat")

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_page_view_keeps_existing_cookie(self, client):
        client.cookies.set(COOKIE, "sess-1")
        response = client.post("/visitor/page-view", json={"path": "/checkout/"})

        assert response.json()["session_id"] == "sess-1"
        assert COOKIE not in response.cookies

    def test_page_view_touches_session_once(self, client, db):
        client.cookies.set(COOKIE, "sess-1")

        with patch("forms_approval.services.session_tracker.touch", wraps=session_tracker.touch) as touch:
            client.post("/visitor/page-view", json={"path": "/checkout/"})

        touch.assert_called_once()
        assert session_tracker.liveness(db, "sess-1") == (True, "Checkout")

    def test_check_redirect_without_session(self, client):
        response = client.post("/visitor/check-redirect")

        assert response.status_code == 200
        assert response.json()["redirect"] is False
        assert response.json()["session_id"] is None

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
