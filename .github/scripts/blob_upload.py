#!/usr/bin/env python3
"""
Upload audit log files to Azure blob storage.

Blobs are named after the local file, so re-uploading a period file
replaces the previous copy with the longer one.
"""

from pathlib import Path
from typing import Iterable, List, Optional

from az_cli import run_az


class BlobUploader:
    def __init__(self, account_name: str, container_name: str, auth_mode: str = "login"):
        self.account_name = account_name
        self.container_name = container_name
        self.auth_mode = auth_mode

    def _target(self) -> List[str]:
        return [
            "--account-name", self.account_name,
            "--container-name", self.container_name,
            "--auth-mode", self.auth_mode,
        ]

    def upload(self, path: Path, blob_name: Optional[str] = None) -> str:
        """
        Upload one log file, replacing any blob of the same name.

        Args:
            path: Local log file
            blob_name: Blob name; defaults to the file name

        Returns:
            The blob name used
        """
        name = blob_name or Path(path).name
        run_az([
            "storage", "blob", "upload",
            *self._target(),
            "--name", name,
            "--file", str(path),
            "--overwrite",
        ], output="none")
        return name

    def upload_all(self, paths: Iterable[Path]) -> List[str]:
        return [self.upload(p) for p in paths]

    def list_blobs(self, prefix: Optional[str] = None) -> List[str]:
        """Sorted blob names in the container, optionally limited to ``prefix``."""
        args = ["storage", "blob", "list", *self._target(), "--query", "[].name"]
        if prefix:
            args += ["--prefix", prefix]
        return sorted(run_az(args) or [])
