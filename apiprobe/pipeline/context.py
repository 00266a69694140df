from dataclasses import dataclass
from pathlib import Path

from apiprobe.models.route import AuthProfile, RouteModel


@dataclass(frozen=True)
class RunContext:
    """Immutable inputs shared by every stage of one run."""
    base_url: str
    routes: tuple[RouteModel, ...]
    auth_profile: AuthProfile
    probes_dir: Path
