"""
Identity directory backed by an external OIDC identity provider.

Provides:
- Token validation: verifies provider-issued JWTs against the provider JWKS
  and returns the durable subject id.
- Account deletion: removes the provider account for a username through the
  provider's admin API.

Supports two verification modes controlled by settings.identity_jwt_verification:
- Strict mode (True): full signature / issuer / audience verification.
- Relaxed mode (False): parse token without signature verification (dev only).
"""
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from jose import JWTError, jwt

from meetfood.core.config import settings
from meetfood.core.errors import AuthError, IdentityDirectoryError

logger = logging.getLogger(__name__)


class IdentityDirectory(ABC):
    """Maps subject ids to identity-provider accounts."""

    @abstractmethod
    def validate_token(self, token: str) -> str:
        """
        Validate an identity token.

        Returns:
            The token's subject id

        Raises:
            AuthError: If the token is invalid or expired
        """
        pass

    @abstractmethod
    def delete_account(self, username: str) -> bool:
        """
        Delete the provider account for a username.

        Returns:
            True if deleted, False if the account was already gone

        Raises:
            IdentityDirectoryError: If the provider call failed or timed out
        """
        pass


@lru_cache(maxsize=4)
def _fetch_jwks(issuer: str, timeout: float) -> Dict[str, Any]:
    """
    Fetch JWKS for the given issuer and cache the result.

    Args:
        issuer: Issuer URL from the JWT claims.
        timeout: Request timeout in seconds.

    Returns:
        JWKS payload as a dict.
    """
    jwks_url = issuer.rstrip("/") + "/.well-known/jwks.json"

    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.get(jwks_url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise AuthError(f"Unable to fetch identity provider JWKS: {exc}") from exc

    data = response.json()
    if "keys" not in data:
        raise AuthError("Invalid JWKS payload from identity provider")
    return data


class OIDCIdentityDirectory(IdentityDirectory):
    """Identity directory talking to the provider over HTTP."""

    def __init__(self, http_client: Optional[httpx.Client] = None):
        self._http_client = http_client

    # Token validation

    def _get_jwks(self, issuer: str) -> Dict[str, Any]:
        return _fetch_jwks(issuer, settings.identity_timeout_seconds)

    @staticmethod
    def _get_signing_key(jwks: Dict[str, Any], kid: str) -> Dict[str, Any]:
        """
        Find signing key in JWKS for the given key ID.
        """
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                return key

        raise AuthError("Signing key not found for token")

    def decode_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode a provider JWT.

        In strict mode this validates the RS256 signature against the JWKS,
        the issuer (settings.identity_issuer if set, otherwise the token's own)
        and the audience when settings.identity_audience is set.

        Returns:
            Decoded claims as a dictionary.
        """
        try:
            unverified_header = jwt.get_unverified_header(token)
            unverified_claims = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise AuthError("Invalid authorization token") from exc

        # Relaxed mode: trust unverified claims (development only).
        if not settings.identity_jwt_verification:
            return unverified_claims

        issuer = unverified_claims.get("iss")
        expected_issuer = settings.identity_issuer or issuer
        if not issuer or not expected_issuer:
            raise AuthError("Invalid token: missing issuer")

        jwks = self._get_jwks(expected_issuer)
        kid = unverified_header.get("kid")
        if not kid:
            raise AuthError("Invalid token: missing key id")
        signing_key = self._get_signing_key(jwks, kid)

        verify_aud = settings.identity_audience is not None
        decode_kwargs: Dict[str, Any] = {
            "algorithms": ["RS256"],
            "issuer": expected_issuer,
            "options": {"verify_aud": verify_aud},
        }
        if verify_aud:
            decode_kwargs["audience"] = settings.identity_audience

        try:
            return jwt.decode(token, signing_key, **decode_kwargs)
        except JWTError as exc:
            raise AuthError("Invalid or expired authorization token") from exc

    def validate_token(self, token: str) -> str:
        claims = self.decode_token(token)
        subject = claims.get("sub")
        if not subject:
            raise AuthError("Invalid token: missing subject")
        return subject

    # Account administration

    def _client(self) -> httpx.Client:
        if self._http_client is not None:
            return self._http_client
        return httpx.Client(timeout=settings.identity_timeout_seconds)

    def delete_account(self, username: str) -> bool:
        url = (
            f"{settings.identity_admin_url.rstrip('/')}/user-pools/"
            f"{quote(settings.identity_user_pool_id, safe='')}/users/{quote(username, safe='')}"
        )
        headers = {"Authorization": f"Bearer {settings.identity_admin_api_key}"}

        client = self._client()
        try:
            response = client.delete(url, headers=headers, timeout=settings.identity_timeout_seconds)
        except httpx.TimeoutException as exc:
            raise IdentityDirectoryError(f"Timed out deleting identity account {username}") from exc
        except httpx.HTTPError as exc:
            raise IdentityDirectoryError(f"Failed to delete identity account {username}: {exc}") from exc
        finally:
            if client is not self._http_client:
                client.close()

        if response.status_code == 404:
            logger.info(f"Identity account {username} already deleted")
            return False
        if response.is_error:
            raise IdentityDirectoryError(
                f"Identity provider refused deletion of {username}: HTTP {response.status_code}"
            )

        logger.info(f"Deleted identity account {username}")
        return True


# Global identity directory instance
identity_directory = OIDCIdentityDirectory()
