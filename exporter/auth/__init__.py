"""Credential supply: bearer tokens, client credentials grant and PKCE helpers."""

from .credentials import BearerToken, CredentialProvider, token_from_response
from .exceptions import AuthError, StateMismatchError
from .pkce import (
    PkceLogin,
    build_authorization_url,
    exchange_authorization_code,
    generate_code_challenge,
    generate_code_verifier,
    generate_state,
)

__all__ = [
    "BearerToken",
    "CredentialProvider",
    "token_from_response",
    "PkceLogin",
    "build_authorization_url",
    "exchange_authorization_code",
    "generate_code_challenge",
    "generate_code_verifier",
    "generate_state",
    "AuthError",
    "StateMismatchError",
]
