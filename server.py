from __future__ import annotations

from starlette.applications import Starlette

from auth.navigator import RequestNavigator
from auth.session_manager import SmartSessionManager
from auth.session_store import FileSessionStore
from kpfhir.app import create_app as _create_app
from kpfhir.constants import APP_NAME, APP_VERSION, LOGGER
from kpfhir.env import load_env, load_settings, setup_logging, validate_env
from kpfhir.http import build_http_client


def create_app() -> Starlette:
    load_env()
    debug_enabled = setup_logging()
    validate_env()
    settings = load_settings()

    manager = SmartSessionManager(
        client_id=settings.client_id,
        redirect_uri=settings.redirect_uri,
        store=FileSessionStore(settings.session_store_path),
        navigator=RequestNavigator(),
        http_client=build_http_client(
            timeout=settings.http_timeout,
            debug_enabled=debug_enabled,
        ),
        fhir_base_url=settings.fhir_base_url,
        authorize_url=settings.authorize_url,
        token_url=settings.token_url,
    )
    LOGGER.info(
        "%s %s using FHIR API %s",
        APP_NAME,
        APP_VERSION,
        settings.fhir_base_url,
    )
    return _create_app(manager)


def main() -> None:
    import uvicorn

    app = create_app()
    settings = load_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
