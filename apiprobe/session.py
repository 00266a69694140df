"""Login against the target and build credential headers from the result."""

import logging
from typing import Optional

from apiprobe.config import PROBE_LOGIN_EMAIL, PROBE_LOGIN_PASSWORD
from apiprobe.errors import NetworkProbeError
from apiprobe.models.route import AuthProfile
from apiprobe.transport import ContextFactory, join_url

log = logging.getLogger(__name__)

# Fallback token keys tried after the profile's token field
_TOKEN_FALLBACKS = ("accessToken", "access_token")


async def authenticate(
    profile: AuthProfile,
    base_url: str,
    context_factory: ContextFactory,
) -> Optional[str]:
    """Log in once through an isolated context and return the token, if any.

    Failure is never fatal: the caller continues without a credential.
    """
    if not profile.present:
        return None

    url = join_url(base_url, profile.effective_login_path)
    try:
        async with context_factory() as transport:
            resp = await transport.send(
                profile.effective_login_method,
                url,
                headers={"Content-Type": "application/json"},
                json_body={"email": PROBE_LOGIN_EMAIL, "password": PROBE_LOGIN_PASSWORD},
            )
    except NetworkProbeError as e:
        log.warning("login request failed, continuing without token: %s", e)
        return None

    if resp.status >= 400:
        log.warning("login returned %d, continuing without token", resp.status)
        return None
    try:
        body = resp.json_body()
    except ValueError:
        log.warning("login response is not JSON, continuing without token")
        return None
    if not isinstance(body, dict):
        return None

    for key in (profile.effective_token_field, *_TOKEN_FALLBACKS):
        token = body.get(key)
        if isinstance(token, str) and token:
            log.info("authenticated against %s", url)
            return token
    log.warning("login response carried no token field")
    return None


def credential_headers(profile: AuthProfile, token: Optional[str]) -> dict:
    """Header(s) carrying *token*; bearer scheme for the Authorization header."""
    if not token:
        return {}
    name = profile.effective_token_header
    if name.lower() == "authorization":
        return {name: f"Bearer {token}"}
    return {name: token}
