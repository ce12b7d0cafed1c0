"""
Auth provider client
Email/password flows against the Supabase GoTrue REST API and local
verification of the access tokens it issues
"""

import os
from dataclasses import dataclass
from typing import Optional, Dict, Any

import jwt
import requests

from logging_config import get_logger, log_api_call
from .retry_config import request_with_retry

logger = get_logger(__name__)

JWT_AUDIENCE = "authenticated"
JWT_ALGORITHM = "HS256"

NOT_AUTHENTICATED = "User not authenticated. Please sign in again."
AUTH_FAILED = "Authentication failed. Please sign in again."
AUTH_UNAVAILABLE = "Authentication service unavailable. Please try again."


@dataclass
class AuthenticatedUser:
    id: str
    email: Optional[str] = None


@dataclass
class AuthResult:
    user: Optional[AuthenticatedUser]
    error: Optional[str]


def _auth_url(path: str) -> Optional[str]:
    base = os.getenv("SUPABASE_URL")
    if not base:
        return None
    return f"{base.rstrip('/')}/auth/v1/{path}"


def _headers() -> Dict[str, str]:
    return {
        "apikey": os.getenv("SUPABASE_ANON_KEY", ""),
        "Content-Type": "application/json",
    }


def _provider_error(response: requests.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    return body.get("error_description") or body.get("msg") or body.get("message") or default


def _post(path: str, payload: Dict[str, Any]) -> Optional[requests.Response]:
    url = _auth_url(path)
    if url is None:
        logger.error("SUPABASE_URL is not configured")
        return None
    log_api_call(logger, "supabase_auth", path.split("?")[0])
    return request_with_retry(
        lambda: requests.post(url, json=payload, headers=_headers(), timeout=10),
        "auth",
    )


def sign_in(email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    """
    Password sign-in.

    Returns:
        {"success": True, "session": <tokens>} or {"error": <message>}
    """
    if not email or not password:
        return {"error": "Email and password are required."}

    response = _post("token?grant_type=password", {"email": email, "password": password})
    if response is None:
        return {"error": AUTH_UNAVAILABLE}
    if not response.ok:
        message = _provider_error(response, "Could not authenticate user.")
        logger.error(f"Sign-in error: {message}", extra={"status_code": response.status_code})
        return {"error": message}

    return {"success": True, "session": response.json()}


def sign_up(email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    """
    Register a new user; the provider sends the confirmation email.

    Returns:
        {"message": <next step>} or {"error": <message>}
    """
    if not email or not password:
        return {"error": "Email and password are required."}

    response = _post("signup", {"email": email, "password": password})
    if response is None:
        return {"error": AUTH_UNAVAILABLE}
    if not response.ok:
        message = _provider_error(response, "Could not sign up user.")
        logger.error(f"Sign-up error: {message}", extra={"status_code": response.status_code})
        return {"error": message}

    data = response.json()
    # Depending on confirmation settings the user is either top-level or nested
    user = data.get("user") if isinstance(data.get("user"), dict) else data
    if not user or not user.get("id"):
        return {"error": "An unexpected error occurred during sign up."}

    if user.get("identities") == []:
        return {"message": "Sign up successful, but please check your email for a confirmation "
                           "link or wait for admin approval."}

    return {"message": "Sign up successful! Please check your email for a confirmation link."}


def verify_otp(token_hash: Optional[str], otp_type: Optional[str]) -> Dict[str, Any]:
    """Confirm an email link (token_hash + type)."""
    if not token_hash or not otp_type:
        return {"error": "Missing token or type."}

    response = _post("verify", {"token_hash": token_hash, "type": otp_type})
    if response is None or not response.ok:
        logger.error("Auth confirmation error: invalid token or type, or OTP verification failed.")
        return {"error": "confirmation_failed"}

    return {"success": True, "session": response.json()}


def exchange_code_for_session(code: str, code_verifier: Optional[str] = None) -> Dict[str, Any]:
    """Exchange a PKCE auth code for a session."""
    payload = {"auth_code": code}
    if code_verifier:
        payload["code_verifier"] = code_verifier

    response = _post("token?grant_type=pkce", payload)
    if response is None or not response.ok:
        logger.error("Auth code exchange failed")
        return {"error": "code_exchange_failed"}

    return {"success": True, "session": response.json()}


def verify_access_token(token: str) -> Optional[AuthenticatedUser]:
    """
    Verify an access token issued by the provider.

    Returns:
        AuthenticatedUser, or None when the token is invalid, expired or
        the JWT secret is not configured
    """
    secret = os.getenv("SUPABASE_JWT_SECRET")
    if not secret or not token:
        return None
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
        )
    except jwt.PyJWTError as e:
        logger.info(f"Access token rejected: {e}")
        return None

    user_id = claims.get("sub")
    if not user_id:
        return None
    return AuthenticatedUser(id=user_id, email=claims.get("email"))


def authenticate_user(authorization: Optional[str]) -> AuthResult:
    """
    Resolve the user from an Authorization header ("Bearer <token>").
    """
    if not authorization:
        return AuthResult(user=None, error=NOT_AUTHENTICATED)

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return AuthResult(user=None, error=NOT_AUTHENTICATED)

    user = verify_access_token(token.strip())
    if user is None:
        return AuthResult(user=None, error=AUTH_FAILED)

    return AuthResult(user=user, error=None)
