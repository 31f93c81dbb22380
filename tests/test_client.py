import json

import httpx
import pytest

from client import ApiClientError, AuthState, CivicClient


def _client(handler, token="abc"):
    return CivicClient("http://api.test", AuthState(token), transport=httpx.MockTransport(handler))


def test_token_sent_as_bearer_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"success": True, "data": {"report": {"id": "r1"}}})

    with _client(handler) as api:
        assert api.get_report("r1") == {"id": "r1"}
    assert seen["auth"] == "Bearer abc"


def test_cleared_auth_sends_no_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"success": True, "data": {"reports": []}})

    auth = AuthState("abc")
    api = CivicClient("http://api.test", auth, transport=httpx.MockTransport(handler))
    auth.clear()

    assert api.list_reports() == []
    assert seen["auth"] is None
    assert not auth.is_authenticated


def test_error_envelope_raises():
    def handler(request):
        return httpx.Response(403, json={"success": False, "message": "Only administrators can update report details"})

    with _client(handler) as api:
        with pytest.raises(ApiClientError) as exc:
            api.update_report("r1", status="resolved")
    assert exc.value.status_code == 403
    assert str(exc.value) == "Only administrators can update report details"


def test_delete_sends_reason_body():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": {"reportId": "r1"}})

    with _client(handler) as api:
        assert api.delete_report("r1", reason="duplicate") == "r1"
    assert seen == {"method": "DELETE", "body": {"reason": "duplicate"}}


def test_non_json_error():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    with _client(handler) as api:
        with pytest.raises(ApiClientError) as exc:
            api.notifications()
    assert exc.value.status_code == 502
