from typing import Optional

from pydantic import BaseModel, ConfigDict

from apiprobe.config import (
    DEFAULT_LOGIN_METHOD,
    DEFAULT_LOGIN_PATH,
    DEFAULT_TOKEN_FIELD,
    DEFAULT_TOKEN_HEADER,
)

# Methods that carry no request body when probed
BODYLESS_METHODS = frozenset({"GET", "DELETE", "HEAD", "OPTIONS"})


class RouteModel(BaseModel):
    """One discovered (method, path) pair. Immutable once extracted."""
    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    source_location: str = ""
    line: Optional[int] = None
    auth_required: bool = False
    middleware: frozenset[str] = frozenset()

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"

    @property
    def wire_method(self) -> str:
        """Method actually sent; Express ``router.all`` routes are probed with GET."""
        return "GET" if self.method == "ALL" else self.method

    @property
    def has_body(self) -> bool:
        return self.wire_method not in BODYLESS_METHODS


class AuthProfile(BaseModel):
    """Inferred login/token contract of the target.

    Unset fields mean "use the documented default"; read them through the
    ``effective_*`` properties so that ``None`` never reaches a request.
    """
    model_config = ConfigDict(frozen=True)

    present: bool = False
    login_path: Optional[str] = None
    login_method: Optional[str] = None
    token_field: Optional[str] = None
    token_header_name: Optional[str] = None
    secret_hint: Optional[str] = None
    middleware_name: Optional[str] = None

    @property
    def effective_login_path(self) -> str:
        return self.login_path or DEFAULT_LOGIN_PATH

    @property
    def effective_login_method(self) -> str:
        return (self.login_method or DEFAULT_LOGIN_METHOD).upper()

    @property
    def effective_token_field(self) -> str:
        return self.token_field or DEFAULT_TOKEN_FIELD

    @property
    def effective_token_header(self) -> str:
        return self.token_header_name or DEFAULT_TOKEN_HEADER
