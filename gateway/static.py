"""Read-only serving of merged files."""

import os
import typing
from pathlib import Path

from starlette.staticfiles import StaticFiles


class UploadStaticFiles(StaticFiles):
    """
    StaticFiles that hides in-progress merge files and the chunk storage root.

    Temp files are dot-prefixed, and the default chunk root sits inside the
    upload root, so both would otherwise be reachable.
    """

    def __init__(self, *, directory: str, hidden_root: Path, **kwargs):
        super().__init__(directory=directory, **kwargs)
        self.hidden_root = Path(hidden_root).resolve()

    def lookup_path(self, path: str) -> typing.Tuple[str, typing.Optional[os.stat_result]]:
        if any(part.startswith(".") for part in Path(path).parts):
            return "", None

        full_path, stat_result = super().lookup_path(path)
        if full_path:
            resolved = Path(full_path).resolve()
            if resolved == self.hidden_root or self.hidden_root in resolved.parents:
                return "", None
        return full_path, stat_result
