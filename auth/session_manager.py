"""OAuth2 Authorization Code + PKCE session for the Kaiser Permanente FHIR API.

The manager owns the browser-redirect handshake (``start_authorization`` /
``complete_authorization``), the token lifecycle (``restore_session``,
``refresh_access_token``, ``logout``) and ``authenticated_request``, which
retries a request at most ``max_auth_retries`` times after a refresh when the
API answers 401.

Session fields live in an immutable :class:`~auth.models.Session` that is
replaced on every transition. Persistence and navigation are injected as a
:class:`~auth.session_store.SessionStore` and a
:class:`~auth.navigator.Navigator`.

Tokens, verifiers and state values are never logged.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
from collections.abc import Mapping

import httpx

from auth import pkce, smart_oauth2
from auth.errors import (
    AuthorizationDeniedError,
    CsrfMismatchError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    ResourceRequestFailedError,
)
from auth.models import PendingAuthorization, Session, SessionStatus
from auth.navigator import Navigator
from auth.session_store import (
    ACCESS_TOKEN_KEY,
    CODE_VERIFIER_KEY,
    OAUTH_STATE_KEY,
    PATIENT_ID_KEY,
    REFRESH_TOKEN_KEY,
    SessionStore,
)
from auth.urls import build_resource_url, query_params_from_url

LOGGER = logging.getLogger("kpfhir.auth")

FHIR_JSON = "application/fhir+json"


class SmartSessionManager:
    def __init__(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        store: SessionStore,
        navigator: Navigator,
        http_client: httpx.AsyncClient,
        fhir_base_url: str = smart_oauth2.KP_FHIR_BASE_URL,
        authorize_url: str = smart_oauth2.KP_AUTHORIZE_URL,
        token_url: str = smart_oauth2.KP_TOKEN_URL,
        scopes: list[str] | None = None,
        max_auth_retries: int = 1,
        exchange_code_fn=smart_oauth2.exchange_code,
        refresh_token_fn=smart_oauth2.refresh_token,
    ) -> None:
        self.store = store
        self.navigator = navigator
        self.http_client = http_client
        self.fhir_base_url = fhir_base_url.rstrip("/")
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.scopes = scopes or list(smart_oauth2.DEFAULT_SCOPES)
        self.max_auth_retries = max(0, max_auth_retries)

        self._session = Session(client_id=client_id, redirect_uri=redirect_uri)
        self._pending: PendingAuthorization | None = None
        self._refreshing = False
        self._refresh_lock = asyncio.Lock()
        self._refresh_count = 0
        self._refresh_error: Exception | None = None
        self._generation = 0
        self._exchange_code_fn = exchange_code_fn
        self._refresh_token_fn = refresh_token_fn

    # -- state -----------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def patient_id(self) -> str | None:
        return self._session.patient_id

    @property
    def status(self) -> SessionStatus:
        if self._refreshing:
            return SessionStatus.REFRESHING
        if self._pending is not None:
            return SessionStatus.AUTHORIZATION_PENDING
        if self._session.is_authenticated:
            return SessionStatus.AUTHENTICATED
        return SessionStatus.UNAUTHENTICATED

    # -- authorization ---------------------------------------------------------

    async def start_authorization(self) -> str:
        state = pkce.generate_state()
        code_verifier = pkce.generate_code_verifier()
        code_challenge = pkce.generate_code_challenge(code_verifier)

        # Overwrites any earlier pending pair: one pending authorization at a time.
        await self.store.set(CODE_VERIFIER_KEY, code_verifier)
        await self.store.set(OAUTH_STATE_KEY, state)
        self._pending = PendingAuthorization(code_verifier=code_verifier, state=state)

        url = smart_oauth2.build_authorization_url(
            client_id=self._session.client_id,
            redirect_uri=self._session.redirect_uri,
            scopes=self.scopes,
            state=state,
            aud=self.fhir_base_url,
            code_challenge=code_challenge,
            authorize_url=self.authorize_url,
        )
        LOGGER.info("Redirecting to authorization endpoint %s", self.authorize_url)
        self.navigator.redirect(url)
        return url

    async def complete_authorization(
        self, callback_query: Mapping[str, str] | None = None
    ) -> dict:
        if callback_query is None:
            callback_query = query_params_from_url(self.navigator.current_url())

        code = callback_query.get("code")
        state = callback_query.get("state")

        stored_state = await self.store.get(OAUTH_STATE_KEY)
        code_verifier = await self.store.get(CODE_VERIFIER_KEY)

        try:
            if not stored_state or not code_verifier or not state:
                raise CsrfMismatchError("No pending authorization matches this callback.")
            if not hmac.compare_digest(state.encode("utf-8"), stored_state.encode("utf-8")):
                raise CsrfMismatchError()

            if not code:
                raise AuthorizationDeniedError(
                    callback_query.get("error"),
                    callback_query.get("error_description"),
                )

            token = await self._exchange_code_fn(
                client_id=self._session.client_id,
                code=code,
                redirect_uri=self._session.redirect_uri,
                code_verifier=code_verifier,
                token_url=self.token_url,
                client=self.http_client,
            )
        finally:
            # The verifier/state pair is single-use whatever the outcome.
            await self.store.remove(CODE_VERIFIER_KEY)
            await self.store.remove(OAUTH_STATE_KEY)
            self._pending = None

        self._generation += 1
        self._session = self._session.with_tokens(
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            patient_id=token.patient,
        )
        await self._persist_session()
        LOGGER.info("Authorization completed for patient context %s", bool(token.patient))
        return token.raw

    async def restore_session(self) -> bool:
        access_token = await self.store.get(ACCESS_TOKEN_KEY)
        refresh_token = await self.store.get(REFRESH_TOKEN_KEY)
        patient_id = await self.store.get(PATIENT_ID_KEY)
        code_verifier = await self.store.get(CODE_VERIFIER_KEY)
        state = await self.store.get(OAUTH_STATE_KEY)

        if code_verifier and state:
            self._pending = PendingAuthorization(code_verifier=code_verifier, state=state)
        self._session = self._session.with_tokens(
            access_token=access_token,
            refresh_token=refresh_token,
            patient_id=patient_id,
        )
        return self._session.is_authenticated

    async def refresh_access_token(self) -> dict:
        current_refresh_token = self._session.refresh_token
        if not current_refresh_token:
            raise NoRefreshTokenError()

        generation = self._generation
        self._refreshing = True
        try:
            token = await self._refresh_token_fn(
                client_id=self._session.client_id,
                refresh_token=current_refresh_token,
                token_url=self.token_url,
                client=self.http_client,
            )
        finally:
            self._refreshing = False

        if generation != self._generation:
            # Logout or a new login replaced the session while the refresh ran.
            LOGGER.info("Discarding refreshed token for a replaced session")
            raise NotAuthenticatedError("Session ended during token refresh.")

        self._session = self._session.with_access_token(token.access_token, token.refresh_token)
        await self.store.set(ACCESS_TOKEN_KEY, token.access_token)
        if token.refresh_token:
            await self.store.set(REFRESH_TOKEN_KEY, token.refresh_token)
        LOGGER.info("Refreshed access token")
        return token.raw

    async def logout(self) -> None:
        self._generation += 1
        self._session = self._session.cleared()
        self._pending = None
        await self.store.clear()
        LOGGER.info("Session cleared")

    # -- resource requests -----------------------------------------------------

    async def authenticated_request(
        self,
        resource_path: str,
        query_params: Mapping[str, str] | None = None,
    ):
        url = build_resource_url(self.fhir_base_url, resource_path)
        params = dict(query_params or {})
        attempt = 0

        while True:
            access_token = self._session.access_token
            if not access_token:
                raise NotAuthenticatedError()

            try:
                response = await self.http_client.get(
                    url,
                    params=params,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": FHIR_JSON,
                    },
                )
            except httpx.HTTPError as error:
                raise ResourceRequestFailedError(f"FHIR request failed: {error}") from error

            if response.status_code == 401 and attempt < self.max_auth_retries:
                attempt += 1
                LOGGER.warning(
                    "FHIR request %s returned 401; refreshing token (attempt %s of %s)",
                    resource_path,
                    attempt,
                    self.max_auth_retries,
                )
                await self._refresh_after_unauthorized(access_token)
                continue

            if response.is_error:
                detail = response.text
                raise ResourceRequestFailedError(
                    f"FHIR request failed with status {response.status_code}: {resource_path}",
                    status_code=response.status_code,
                    detail=detail,
                )

            try:
                return response.json()
            except ValueError as error:
                raise ResourceRequestFailedError(
                    "FHIR API returned a non-JSON body.",
                    status_code=response.status_code,
                    detail=response.text,
                ) from error

    async def _refresh_after_unauthorized(self, rejected_token: str) -> None:
        refresh_count = self._refresh_count
        async with self._refresh_lock:
            # Another request already replaced the rejected token.
            if self._session.access_token != rejected_token:
                return
            # A refresh for this token failed while this request was waiting.
            if self._refresh_count != refresh_count and self._refresh_error is not None:
                raise self._refresh_error

            try:
                await self.refresh_access_token()
            except Exception as error:
                self._refresh_error = error
                raise
            else:
                self._refresh_error = None
            finally:
                self._refresh_count += 1

    async def _persist_session(self) -> None:
        values = {
            ACCESS_TOKEN_KEY: self._session.access_token,
            REFRESH_TOKEN_KEY: self._session.refresh_token,
            PATIENT_ID_KEY: self._session.patient_id,
        }
        for key, value in values.items():
            if value:
                await self.store.set(key, value)
            else:
                await self.store.remove(key)
