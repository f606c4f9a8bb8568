"""Bearer credentials and the provider that keeps one valid.

The pipeline only needs "a bearer token usable until time T". It may come
from a static access token (e.g. obtained through the PKCE login flow) or
from a client credentials grant performed here.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import FrozenSet, Optional

import requests

from exporter.config.models import CredentialsConfig
from exporter.logging import get_logger
from exporter.utils.timestamps import ensure_utc, unix_to_timestamp, utc_now

from .exceptions import AuthError

logger = get_logger(__name__, component="auth")

# Tokens are treated as expired this long before their real expiry
EXPIRY_LEEWAY_SECONDS = 60


@dataclass(frozen=True)
class BearerToken:
    """An access token with its issue time and lifetime.

    Attributes:
        access_token: Opaque bearer token
        issued_at: UTC time the token was issued
        expires_in: Lifetime in seconds, None if unknown (treated as non-expiring)
        token_type: Token type reported by the server
        scopes: Granted scopes, None when the server does not report them
    """

    access_token: str
    issued_at: datetime
    expires_in: Optional[int] = None
    token_type: str = "bearer"
    scopes: Optional[FrozenSet[str]] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        return ensure_utc(self.issued_at) + timedelta(seconds=self.expires_in)

    def is_valid(self, at: Optional[datetime] = None, leeway: int = EXPIRY_LEEWAY_SECONDS) -> bool:
        """Whether the token can still be used at the given time."""
        if not self.access_token:
            return False
        expires_at = self.expires_at
        if expires_at is None:
            return True
        moment = ensure_utc(at) if at is not None else utc_now()
        return moment < expires_at - timedelta(seconds=leeway)

    def has_scope(self, scope: Optional[str]) -> bool:
        """Unknown scopes are assumed granted; the API rejects the call otherwise."""
        if not scope or self.scopes is None:
            return True
        return scope in self.scopes

    @property
    def authorization_header(self) -> str:
        return f"Bearer {self.access_token}"


def token_from_response(payload: dict, issued_at: Optional[datetime] = None) -> BearerToken:
    """Build a BearerToken from an OAuth token endpoint response.

    Raises:
        AuthError: If the response carries no access token
    """
    if not isinstance(payload, dict) or not payload.get("access_token"):
        raise AuthError("Token response did not include an access_token")

    scope = payload.get("scope")
    expires_in = payload.get("expires_in")
    return BearerToken(
        access_token=payload["access_token"],
        issued_at=issued_at or utc_now(),
        expires_in=int(expires_in) if expires_in is not None else None,
        token_type=payload.get("token_type", "bearer"),
        scopes=frozenset(scope.split()) if isinstance(scope, str) and scope else None,
    )


class CredentialProvider:
    """Supplies a valid bearer token, refreshing through client credentials when needed.

    One provider is shared by every run in the process; the cached token is
    guarded by a lock.
    """

    def __init__(
        self,
        credentials: CredentialsConfig,
        session: Optional[requests.Session] = None,
        user_agent: str = "OpenDataExporter/2.0",
    ):
        self.credentials = credentials
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})
        self._lock = threading.Lock()
        self._token: Optional[BearerToken] = None

    def get_token(self) -> BearerToken:
        """Return a token valid now, fetching a new one if the cached one expired.

        Raises:
            AuthError: If no credentials are configured or the grant fails
        """
        with self._lock:
            if self._token is not None and self._token.is_valid():
                return self._token
            self._token = self._obtain_token()
            return self._token

    def invalidate(self) -> None:
        """Drop the cached token so the next call fetches a new one."""
        with self._lock:
            self._token = None

    def _obtain_token(self) -> BearerToken:
        creds = self.credentials
        has_client = bool(creds.client_id and creds.client_secret)

        # A supplied access token wins while it is valid
        if creds.access_token:
            issued_at = (
                unix_to_timestamp(creds.token_issued_at)
                if creds.token_issued_at is not None
                else utc_now()
            )
            token = BearerToken(
                access_token=creds.access_token,
                issued_at=issued_at,
                expires_in=creds.token_expires_in,
            )
            if token.is_valid():
                return token
            if not has_client:
                raise AuthError(
                    f"Configured access token expired at {token.expires_at.isoformat()}; log in again"
                )
            logger.warning(
                "Configured access token expired, falling back to client credentials",
                extra={"event": "auth.token.expired"},
            )

        if has_client:
            return self._client_credentials_grant()

        raise AuthError("No credentials configured: set client_id/client_secret or access_token")

    def _client_credentials_grant(self) -> BearerToken:
        creds = self.credentials
        url = f"{creds.login_base_url}/oauth/token"

        logger.info(
            "Requesting access token",
            extra={"event": "auth.token.requesting", "environment": creds.environment},
        )

        try:
            response = self._session.post(
                url,
                data={"grant_type": "client_credentials"},
                auth=(creds.client_id, creds.client_secret),
                timeout=creds.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise AuthError(f"Token request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise AuthError(
                f"Token request rejected with HTTP {response.status_code}: {response.reason}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthError(f"Token endpoint returned invalid JSON: {e}") from e

        token = token_from_response(payload)
        logger.info(
            "Access token obtained",
            extra={
                "event": "auth.token.obtained",
                "expires_in": token.expires_in,
            },
        )
        return token
