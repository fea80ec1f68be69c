#!/usr/bin/env python3
"""
Thin wrapper around the Azure CLI.

All cloud calls in these scripts go through :func:`run_az` so there is a
single place where a failed or missing ``az`` becomes
:class:`ServiceUnavailable`.  Calls are blocking and are not retried.
"""

import json
import shutil
import subprocess
from typing import Any, List

from whitelist_errors import ServiceUnavailable

AZ = "az"


def ensure_az_available() -> str:
    """Return the resolved path of ``az`` or raise if it is not installed."""
    az_path = shutil.which(AZ)
    if not az_path:
        raise ServiceUnavailable(
            f"Required dependency '{AZ}' is not installed. Please install it first."
        )
    return az_path


def run_az(args: List[str], output: str = "json") -> Any:
    """
    Run ``az <args> -o <output>`` and return its result.

    With ``output="json"`` the parsed JSON is returned (``None`` for empty
    output); any other output format returns the raw stdout text.
    """
    cmd = [AZ, *args, "--output", output]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError as exc:
        raise ServiceUnavailable(f"Required dependency '{AZ}' is not installed.") from exc
    except subprocess.CalledProcessError as exc:
        detail = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
        raise ServiceUnavailable(f"'{' '.join(cmd[:4])}' failed: {detail}") from exc

    if output != "json":
        return result.stdout
    if not result.stdout.strip():
        return None
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise ServiceUnavailable(f"Unexpected output from '{' '.join(cmd[:4])}': {exc}") from exc
