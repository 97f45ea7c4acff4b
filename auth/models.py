from __future__ import annotations

import enum
from dataclasses import dataclass, replace


class SessionStatus(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHORIZATION_PENDING = "authorization_pending"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclass(frozen=True)
class PendingAuthorization:
    code_verifier: str
    state: str


@dataclass(frozen=True)
class Session:
    client_id: str
    redirect_uri: str
    access_token: str | None = None
    refresh_token: str | None = None
    patient_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def with_tokens(
        self,
        *,
        access_token: str | None,
        refresh_token: str | None,
        patient_id: str | None,
    ) -> "Session":
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token,
            patient_id=patient_id,
        )

    def with_access_token(self, access_token: str, refresh_token: str | None = None) -> "Session":
        # A refresh response without a refresh_token keeps the current one.
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token or self.refresh_token,
        )

    def cleared(self) -> "Session":
        return Session(client_id=self.client_id, redirect_uri=self.redirect_uri)
