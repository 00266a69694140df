import logging
import os
import re
from pathlib import Path

from apiprobe.config import GENERATED_PROBES_DIR
from apiprobe.errors import ScanError

log = logging.getLogger(__name__)

# Directory / file names never descended into or scanned
SKIP_NAMES = frozenset({
    "node_modules", "dist", "build", "coverage", "tests", "test", "__tests__",
    "__pycache__", "venv", "playwright-tests", GENERATED_PROBES_DIR,
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
})

SOURCE_EXTENSIONS = frozenset({".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs", ".py"})

ROUTE_NAME_PATTERN = re.compile(r"route|router|api|controller|endpoint|handler", re.IGNORECASE)
ROUTE_DIR_NAMES = frozenset({"routes", "routers", "api", "controllers", "endpoints"})

# Conventional entry points at the project root, where routes are often declared
ENTRY_POINT_STEMS = frozenset({"app", "server", "index", "main"})


def _should_skip(name: str) -> bool:
    return name in SKIP_NAMES or name.startswith(".")


class SourceScanner:
    """Walks a project tree and returns files likely to declare routes."""

    def __init__(self, project_path: str | Path) -> None:
        self.root = Path(project_path).resolve()

    def scan(self) -> list[Path]:
        """Return candidate files, sorted for a stable extraction order.

        Raises ``ScanError`` if the root itself cannot be read; unreadable
        subdirectories are skipped.
        """
        if not self.root.is_dir():
            raise ScanError(f"project path is not a readable directory: {self.root}")
        try:
            os.listdir(self.root)
        except OSError as e:
            raise ScanError(f"cannot read project path {self.root}: {e}") from e

        found: list[Path] = []
        for dirpath, dirs, files in os.walk(self.root, onerror=self._on_walk_error):
            dirs[:] = sorted(d for d in dirs if not _should_skip(d))
            current = Path(dirpath)
            for name in sorted(files):
                if _should_skip(name):
                    continue
                path = current / name
                if self.is_candidate(path):
                    found.append(path)

        log.info("scan of %s found %d candidate files", self.root, len(found))
        return found

    def is_candidate(self, path: Path) -> bool:
        if path.suffix.lower() not in SOURCE_EXTENSIONS:
            return False
        if ROUTE_NAME_PATTERN.search(path.name):
            return True
        if path.parent.name.lower() in ROUTE_DIR_NAMES:
            return True
        return path.parent == self.root and path.stem.lower() in ENTRY_POINT_STEMS

    def entry_points(self) -> list[Path]:
        """Conventional entry-point files present at the project root."""
        points = []
        for stem in sorted(ENTRY_POINT_STEMS):
            for ext in sorted(SOURCE_EXTENSIONS):
                path = self.root / f"{stem}{ext}"
                if path.is_file():
                    points.append(path)
        return points

    @staticmethod
    def _on_walk_error(err: OSError) -> None:
        log.warning("skipping unreadable directory %s: %s", err.filename, err.strerror)
