from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from auth.errors import TokenExchangeFailedError, TokenRefreshFailedError
from auth.urls import append_query_params

KP_FHIR_BASE_URL = "https://api.kp.org/fhir"
KP_AUTHORIZE_URL = "https://api.kp.org/oauth2/authorize"
KP_TOKEN_URL = "https://api.kp.org/oauth2/token"

DEFAULT_SCOPES = [
    "patient/Patient.read",
    "patient/AllergyIntolerance.read",
    "patient/CarePlan.read",
    "patient/Condition.read",
    "patient/Device.read",
    "patient/DiagnosticReport.read",
    "patient/DocumentReference.read",
    "patient/Goal.read",
    "patient/Immunization.read",
    "patient/MedicationRequest.read",
    "patient/Observation.read",
    "patient/Procedure.read",
    "openid",
    "fhirUser",
]


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str | None = None
    patient: str | None = None
    expires_in: int | None = None
    scope: str = ""
    id_token: str | None = None
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise ValueError("Token response must be a JSON object.")

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        patient = payload.get("patient")
        expires_in = payload.get("expires_in")
        scope = payload.get("scope", "")
        id_token = payload.get("id_token")

        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response missing access_token.")
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise ValueError("Token response refresh_token must be a string.")
        if patient is not None and not isinstance(patient, str):
            raise ValueError("Token response patient must be a string.")
        if expires_in is not None and not isinstance(expires_in, int):
            raise ValueError("Token response expires_in must be an integer.")
        if not isinstance(scope, str):
            raise ValueError("Token response scope must be a string.")
        if id_token is not None and not isinstance(id_token, str):
            raise ValueError("Token response id_token must be a string.")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token or None,
            patient=patient or None,
            expires_in=expires_in,
            scope=scope,
            id_token=id_token or None,
            raw=payload,
        )


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scopes: list[str],
    state: str,
    aud: str,
    code_challenge: str,
    *,
    authorize_url: str = KP_AUTHORIZE_URL,
) -> str:
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": " ".join(scopes),
        "state": state,
        "aud": aud,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return append_query_params(authorize_url, query)


async def _token_request(
    payload: dict[str, str],
    *,
    token_url: str,
    error_cls: type[TokenExchangeFailedError] | type[TokenRefreshFailedError],
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.post(
            token_url,
            data=payload,
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as error:
        detail = error.response.text
        raise error_cls(
            f"Token request failed with status {error.response.status_code}: {detail}",
            status_code=error.response.status_code,
            detail=detail,
        ) from error
    except httpx.HTTPError as error:
        raise error_cls(f"Token request failed: {error}") from error
    except ValueError as error:
        raise error_cls(
            "Token endpoint returned a non-JSON body.",
            status_code=response.status_code,
        ) from error
    finally:
        if own_client:
            await http_client.aclose()

    try:
        return TokenResponse.from_payload(data)
    except ValueError as error:
        raise error_cls(str(error), status_code=response.status_code) from error


async def exchange_code(
    client_id: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    token_url: str = KP_TOKEN_URL,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "code_verifier": code_verifier,
        },
        token_url=token_url,
        error_cls=TokenExchangeFailedError,
        client=client,
    )


async def refresh_token(
    client_id: str,
    refresh_token: str,
    *,
    token_url: str = KP_TOKEN_URL,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        },
        token_url=token_url,
        error_cls=TokenRefreshFailedError,
        client=client,
    )
