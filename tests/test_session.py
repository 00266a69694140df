import json

import httpx
import pytest

from apiprobe.models.route import AuthProfile
from apiprobe.session import authenticate, credential_headers
from apiprobe.transport import join_url

from conftest import make_factory, unreachable

BASE = "http://target.test/"


def login_returning(status=200, **kwargs):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(status, **kwargs)
    return make_factory(handler), seen


@pytest.mark.asyncio
async def test_no_auth_means_no_login():
    factory, seen = login_returning(json={"token": "t"})
    assert await authenticate(AuthProfile(), BASE, factory) is None
    assert seen == []


@pytest.mark.asyncio
async def test_login_with_profile_fields():
    factory, seen = login_returning(json={"jwt": "abc"})
    profile = AuthProfile(present=True, login_path="/auth/signin", login_method="put", token_field="jwt")
    assert await authenticate(profile, BASE, factory) == "abc"
    method, url, body = seen[0]
    assert (method, url) == ("PUT", "http://target.test/auth/signin")
    assert set(body) == {"email", "password"}


@pytest.mark.asyncio
async def test_fallback_token_keys():
    factory, _ = login_returning(json={"access_token": "xyz"})
    assert await authenticate(AuthProfile(present=True), BASE, factory) == "xyz"


@pytest.mark.asyncio
@pytest.mark.parametrize("status,kwargs", [
    (401, {"json": {"token": "t"}}),
    (200, {"text": "welcome"}),
    (200, {"json": ["t"]}),
    (200, {"json": {"token": ""}}),
])
async def test_login_failures_yield_no_token(status, kwargs):
    factory, _ = login_returning(status, **kwargs)
    assert await authenticate(AuthProfile(present=True), BASE, factory) is None


@pytest.mark.asyncio
async def test_unreachable_login():
    assert await authenticate(AuthProfile(present=True), BASE, make_factory(unreachable)) is None


def test_credential_headers():
    assert credential_headers(AuthProfile(), None) == {}
    assert credential_headers(AuthProfile(), "t") == {"Authorization": "Bearer t"}
    assert credential_headers(AuthProfile(token_header_name="x-access-token"), "t") == {"x-access-token": "t"}


def test_join_url():
    assert join_url("http://h/", "/a") == "http://h/a"
    assert join_url("http://h", "a") == "http://h/a"
