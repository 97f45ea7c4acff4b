from __future__ import annotations

import contextlib

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.errors import (
    AuthorizationDeniedError,
    CsrfMismatchError,
    FhirClientError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    ResourceRequestFailedError,
    TokenRefreshFailedError,
)
from auth.navigator import RequestNavigator
from auth.session_manager import SmartSessionManager

from .constants import APP_VERSION, LOGGER
from .dashboard import load_patient_data
from .http import friendly_error_message
from .resources import FhirClient


def error_status(error: FhirClientError) -> int:
    if isinstance(error, (CsrfMismatchError, AuthorizationDeniedError)):
        return 400
    if isinstance(error, (NotAuthenticatedError, NoRefreshTokenError, TokenRefreshFailedError)):
        return 401
    if isinstance(error, ResourceRequestFailedError) and error.status_code in {401, 403, 404}:
        return error.status_code
    return 502


def error_response(error: FhirClientError) -> Response:
    status_code = error_status(error)
    payload = error.to_payload()
    payload["message"] = friendly_error_message(error.status_code or status_code)
    return JSONResponse(payload, status_code=status_code)


def _bind_navigator(manager: SmartSessionManager, request: Request) -> None:
    if isinstance(manager.navigator, RequestNavigator):
        manager.navigator.bind(str(request.url))


def create_app(manager: SmartSessionManager) -> Starlette:
    fhir_client = FhirClient(manager)

    async def index_route(request: Request) -> Response:
        del request
        return JSONResponse(
            {
                "authenticated": manager.session.is_authenticated,
                "status": manager.status.value,
                "login_url": "/login",
            }
        )

    async def health_route(request: Request) -> Response:
        del request
        return JSONResponse({"status": "ok", "version": APP_VERSION})

    async def login_route(request: Request) -> Response:
        _bind_navigator(manager, request)
        url = await manager.start_authorization()
        return RedirectResponse(url=url, status_code=302)

    async def callback_route(request: Request) -> Response:
        _bind_navigator(manager, request)
        try:
            await manager.complete_authorization(dict(request.query_params))
        except FhirClientError as error:
            LOGGER.warning("OAuth callback failed: %s", error.code)
            return error_response(error)
        return RedirectResponse(url="/", status_code=302)

    async def patient_route(request: Request) -> Response:
        del request
        if not manager.session.is_authenticated:
            return error_response(NotAuthenticatedError())
        try:
            record = await load_patient_data(fhir_client)
        except FhirClientError as error:
            LOGGER.warning("Loading patient data failed: %s", error.code)
            return error_response(error)
        return JSONResponse(record.to_dict())

    async def logout_route(request: Request) -> Response:
        del request
        await manager.logout()
        return RedirectResponse(url="/", status_code=302)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        del app
        await manager.restore_session()
        try:
            yield
        finally:
            await manager.http_client.aclose()

    routes = [
        Route("/", index_route, methods=["GET"]),
        Route("/health", health_route, methods=["GET"]),
        Route("/login", login_route, methods=["GET"]),
        Route("/callback", callback_route, methods=["GET"]),
        Route("/patient", patient_route, methods=["GET"]),
        Route("/logout", logout_route, methods=["GET"]),
    ]
    app = Starlette(routes=routes, lifespan=lifespan)
    app.state.manager = manager
    return app
