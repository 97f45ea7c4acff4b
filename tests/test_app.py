import urllib.parse

import httpx
from starlette.testclient import TestClient

from auth.errors import (
    AuthorizationDeniedError,
    CsrfMismatchError,
    NotAuthenticatedError,
    ResourceRequestFailedError,
    TokenExchangeFailedError,
    TokenRefreshFailedError,
)
from auth.navigator import BrowserNavigator
from auth.session_store import ACCESS_TOKEN_KEY, MemorySessionStore
from kpfhir.app import create_app, error_status
from tests.fhir_helpers import AUTHORIZE_URL, TOKEN_PATH, ScriptedKP, _build_manager


def _build_app(kp: ScriptedKP, store: MemorySessionStore | None = None):
    manager = _build_manager(kp.handler, store=store)
    return manager, create_app(manager)


def _login_state(client: TestClient) -> str:
    response = client.get("/login", follow_redirects=False)
    location = response.headers["location"]
    return urllib.parse.parse_qs(urllib.parse.urlparse(location).query)["state"][0]


def _script_record(kp: ScriptedKP) -> None:
    kp.script("/fhir/Patient/patient-1", (200, {"resourceType": "Patient", "id": "patient-1"}))
    kp.script("/fhir/AllergyIntolerance", (200, {"resourceType": "Bundle", "total": 0}))
    kp.script("/fhir/MedicationRequest", (200, {"resourceType": "Bundle", "total": 0}))
    kp.script("/fhir/Condition", (200, {"resourceType": "Bundle", "total": 0}))
    kp.script("/fhir/Observation", (200, {"resourceType": "Bundle"}), (200, {"resourceType": "Bundle"}))


def test_health_route() -> None:
    _, app = _build_app(ScriptedKP())

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": "0.1.0"}


def test_login_redirects_to_authorization_server() -> None:
    _, app = _build_app(ScriptedKP())

    with TestClient(app) as client:
        response = client.get("/login", follow_redirects=False)

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(AUTHORIZE_URL)
    query = urllib.parse.parse_qs(urllib.parse.urlparse(location).query)
    assert query["code_challenge_method"] == ["S256"]


def test_full_login_and_patient_flow() -> None:
    kp = ScriptedKP()
    manager, app = _build_app(kp)
    kp.script(
        TOKEN_PATH,
        (200, {"access_token": "access-1", "refresh_token": "refresh-1", "patient": "patient-1"}),
    )
    _script_record(kp)

    with TestClient(app) as client:
        state = _login_state(client)
        callback = client.get(
            "/callback", params={"code": "code-1", "state": state}, follow_redirects=False
        )
        index = client.get("/").json()
        patient = client.get("/patient")

    assert callback.status_code == 302
    assert callback.headers["location"] == "/"
    assert index["authenticated"] is True
    assert index["status"] == "authenticated"
    assert patient.status_code == 200
    assert patient.json()["patient"]["id"] == "patient-1"
    assert manager.session.access_token == "access-1"


def test_callback_state_mismatch_returns_400() -> None:
    kp = ScriptedKP()
    _, app = _build_app(kp)

    with TestClient(app) as client:
        _login_state(client)
        response = client.get("/callback", params={"code": "code-1", "state": "forged"})

    assert response.status_code == 400
    assert response.json()["error"] == "csrf_mismatch"
    assert kp.token_requests() == []


def test_callback_denied_reports_provider_error() -> None:
    _, app = _build_app(ScriptedKP())

    with TestClient(app) as client:
        state = _login_state(client)
        response = client.get(
            "/callback",
            params={"state": state, "error": "access_denied", "error_description": "denied"},
        )

    assert response.status_code == 400
    payload = response.json()
    assert payload["error"] == "authorization_denied"
    assert payload["provider_error"] == "access_denied"


def test_callback_exchange_failure_returns_502() -> None:
    kp = ScriptedKP()
    _, app = _build_app(kp)
    kp.script(TOKEN_PATH, (400, {"error": "invalid_grant"}))

    with TestClient(app) as client:
        state = _login_state(client)
        response = client.get("/callback", params={"code": "code-1", "state": state})

    assert response.status_code == 502
    assert response.json()["error"] == "token_exchange_failed"


def test_patient_requires_authentication() -> None:
    _, app = _build_app(ScriptedKP())

    with TestClient(app) as client:
        response = client.get("/patient")

    assert response.status_code == 401
    assert response.json()["error"] == "not_authenticated"


def test_startup_restores_stored_session() -> None:
    kp = ScriptedKP()
    store = MemorySessionStore()
    store._values[ACCESS_TOKEN_KEY] = "stored-access"
    _, app = _build_app(kp, store)

    with TestClient(app) as client:
        index = client.get("/").json()

    assert index["authenticated"] is True


def test_logout_clears_session() -> None:
    kp = ScriptedKP()
    store = MemorySessionStore()
    store._values[ACCESS_TOKEN_KEY] = "stored-access"
    manager, app = _build_app(kp, store)

    with TestClient(app) as client:
        response = client.get("/logout", follow_redirects=False)
        index = client.get("/").json()

    assert response.status_code == 302
    assert index["authenticated"] is False
    assert manager.session.access_token is None
    assert store._values == {}


def test_error_status_mapping() -> None:
    assert error_status(CsrfMismatchError()) == 400
    assert error_status(AuthorizationDeniedError("access_denied")) == 400
    assert error_status(NotAuthenticatedError()) == 401
    assert error_status(TokenRefreshFailedError("expired", status_code=400)) == 401
    assert error_status(TokenExchangeFailedError("boom", status_code=500)) == 502
    assert error_status(ResourceRequestFailedError("gone", status_code=404)) == 404
    assert error_status(ResourceRequestFailedError("down", status_code=503)) == 502


def test_login_redirect_uses_authorization_url_with_any_navigator() -> None:
    opened: list[str] = []
    navigator = BrowserNavigator(open_url=opened.append)
    manager = _build_manager(ScriptedKP().handler, navigator=navigator)
    app = create_app(manager)

    with TestClient(app) as client:
        response = client.get("/login", follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"].startswith(AUTHORIZE_URL)
    assert opened == [response.headers["location"]]


def test_patient_unreachable_api_returns_502() -> None:
    kp = ScriptedKP()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/fhir/"):
            raise httpx.ConnectError("connection refused", request=request)
        return kp.handler(request)

    manager = _build_manager(handler)
    app = create_app(manager)

    with TestClient(app) as client:
        state = _login_state(client)
        kp.script(TOKEN_PATH, (200, {"access_token": "access-1", "patient": "patient-1"}))
        client.get("/callback", params={"code": "code-1", "state": state}, follow_redirects=False)
        response = client.get("/patient")

    assert response.status_code == 502
    assert response.json()["error"] == "resource_request_failed"
