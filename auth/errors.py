from __future__ import annotations


class FhirClientError(RuntimeError):
    code = "fhir_client_error"
    status_code: int | None = None

    def to_payload(self) -> dict:
        return {"error": self.code, "error_description": str(self)}


class CsrfMismatchError(FhirClientError):
    code = "csrf_mismatch"

    def __init__(self, message: str = "State mismatch - possible CSRF attack.") -> None:
        super().__init__(message)


class AuthorizationDeniedError(FhirClientError):
    code = "authorization_denied"

    def __init__(self, error: str | None, error_description: str | None = None) -> None:
        super().__init__(f"Authorization failed: {error} - {error_description}")
        self.error = error
        self.error_description = error_description

    def to_payload(self) -> dict:
        return {
            "error": self.code,
            "error_description": str(self),
            "provider_error": self.error,
            "provider_error_description": self.error_description,
        }


class _StatusError(FhirClientError):
    def __init__(self, message: str, *, status_code: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    def to_payload(self) -> dict:
        return {
            "error": self.code,
            "error_description": str(self),
            "status_code": self.status_code,
        }


class TokenExchangeFailedError(_StatusError):
    code = "token_exchange_failed"


class TokenRefreshFailedError(_StatusError):
    code = "token_refresh_failed"


class ResourceRequestFailedError(_StatusError):
    code = "resource_request_failed"


class NoRefreshTokenError(FhirClientError):
    code = "no_refresh_token"

    def __init__(self, message: str = "No refresh token available.") -> None:
        super().__init__(message)


class NotAuthenticatedError(FhirClientError):
    code = "not_authenticated"
    status_code = 401

    def __init__(self, message: str = "No access token - please authenticate first.") -> None:
        super().__init__(message)
