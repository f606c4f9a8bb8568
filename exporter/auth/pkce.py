"""PKCE (Proof Key for Code Exchange) utilities for the OAuth 2.0 login flow.

Implements RFC 7636 with the S256 challenge method. The browser part of the
flow lives in the control UI; these helpers produce the authorization URL and
exchange the returned code for a BearerToken.
"""

import base64
import hashlib
import hmac
import secrets
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlencode

import requests

from .credentials import BearerToken, token_from_response
from .exceptions import AuthError, StateMismatchError


def base64url_encode(raw: bytes) -> str:
    """Base64 without padding, using the URL-safe alphabet."""
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    """Random verifier; 32 bytes encode to 43 characters."""
    return base64url_encode(secrets.token_bytes(32))


def generate_code_challenge(code_verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier))."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64url_encode(digest)


def generate_state() -> str:
    """Random state parameter for CSRF protection."""
    return base64url_encode(secrets.token_bytes(32))


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    environment: str,
    code_challenge: str,
    state: str,
) -> str:
    """Build the authorization URL for the given environment."""
    params = urlencode(
        {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "state": state,
        }
    )
    return f"https://login.{environment}/oauth/authorize?{params}"


@dataclass
class PkceLogin:
    """State of one pending login: verifier, challenge and CSRF state."""

    client_id: str
    redirect_uri: str
    environment: str
    code_verifier: str = field(default_factory=generate_code_verifier)
    state: str = field(default_factory=generate_state)

    @property
    def code_challenge(self) -> str:
        return generate_code_challenge(self.code_verifier)

    @property
    def authorization_url(self) -> str:
        return build_authorization_url(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            environment=self.environment,
            code_challenge=self.code_challenge,
            state=self.state,
        )

    def verify_state(self, returned_state: Optional[str]) -> None:
        """Raise StateMismatchError unless the callback returned our state."""
        if not returned_state or not hmac.compare_digest(returned_state, self.state):
            raise StateMismatchError("OAuth state mismatch; possible CSRF attempt")

    def exchange(
        self,
        code: str,
        returned_state: Optional[str],
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ) -> BearerToken:
        """Verify state and exchange the authorization code for a token."""
        self.verify_state(returned_state)
        return exchange_authorization_code(
            code=code,
            code_verifier=self.code_verifier,
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            environment=self.environment,
            session=session,
            timeout=timeout,
        )


def exchange_authorization_code(
    code: str,
    code_verifier: str,
    client_id: str,
    redirect_uri: str,
    environment: str,
    session: Optional[requests.Session] = None,
    timeout: int = 30,
) -> BearerToken:
    """
    Exchange an authorization code for an access token.

    Raises:
        AuthError: On transport failure, non-success status or malformed response
    """
    http = session or requests.Session()
    url = f"https://login.{environment}/oauth/token"

    try:
        response = http.post(
            url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "code_verifier": code_verifier,
            },
            timeout=timeout,
        )
    except requests.exceptions.RequestException as e:
        raise AuthError(f"Token exchange with {url} failed: {e}") from e

    if response.status_code >= 400:
        raise AuthError(f"Token exchange rejected with HTTP {response.status_code}: {response.reason}")

    try:
        payload = response.json()
    except ValueError as e:
        raise AuthError(f"Token endpoint returned invalid JSON: {e}") from e

    return token_from_response(payload)
