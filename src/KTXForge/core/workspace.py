"""Scoped temporary directory shared by every task of one compression run."""

import logging
import os
import shutil
import tempfile
from typing import Optional
from uuid import uuid4

logger = logging.getLogger("ktxforge.workspace")


class TempWorkspace:
    """One directory owning all intermediate files of a run.

    ``remove()`` is best-effort and idempotent; failures are logged and
    never raised.
    """

    def __init__(self, parent: Optional[str] = None, prefix: str = "ktxforge_"):
        self.parent = parent or tempfile.gettempdir()
        self.prefix = prefix
        self.path: Optional[str] = None

    def create(self) -> str:
        """Create the workspace directory and return its path."""
        if self.path is not None:
            return self.path
        os.makedirs(self.parent, exist_ok=True)
        for _ in range(256):
            candidate = os.path.join(self.parent, f"{self.prefix}{uuid4().hex}")
            try:
                os.makedirs(candidate, exist_ok=False)
            except FileExistsError:
                continue
            self.path = candidate
            logger.debug("Created workspace %s", candidate)
            return candidate
        raise RuntimeError(f"Unable to allocate workspace under {self.parent}")

    def new_path(self, extension: str) -> str:
        """Return a fresh, not yet existing file path inside the workspace."""
        if self.path is None:
            raise RuntimeError("Workspace has not been created")
        return os.path.join(self.path, uuid4().hex + extension)

    @property
    def exists(self) -> bool:
        return self.path is not None and os.path.isdir(self.path)

    def remove(self) -> None:
        """Recursively delete the workspace directory."""
        path = self.path
        if path is None:
            return
        try:
            shutil.rmtree(path)
            logger.debug("Removed workspace %s", path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove workspace %s: %s", path, exc)

    def __enter__(self) -> "TempWorkspace":
        self.create()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.remove()
        return False
