from typing import Optional

from pydantic import BaseModel, Field


class ProjectRequest(BaseModel):
    """A local project to scan; ``base_url`` is only used by full scans."""
    project_path: str = Field(min_length=1)
    base_url: str = "http://localhost:3000"


class DocumentRequest(BaseModel):
    openapi_url: str = Field(min_length=1)


class RouteInput(BaseModel):
    method: str
    path: str
    auth_required: bool = False


class TargetRequest(BaseModel):
    """A live target plus the routes to probe on it.

    Routes come from ``routes`` or, when that is empty, from ``openapi_url``.
    """
    base_url: str = Field(min_length=1)
    routes: list[RouteInput] = []
    openapi_url: Optional[str] = None
    login_path: Optional[str] = None
    token_field: Optional[str] = None
    auth_present: bool = False
