"""Best-effort persistence of parameter snapshots as ``params.yaml``."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from ..sensors.parameters import ParametersSnapshot

logger = logging.getLogger(__name__)

PARAMS_PATH_ENV = "SENSESIM_PARAMS_PATH"
DEFAULT_PARAMS_PATH = Path("~/.sensesim/params.yaml")


def default_params_path() -> Path:
    """
    Location of the per-user snapshot file.

    ``SENSESIM_PARAMS_PATH`` overrides the default ``~/.sensesim/params.yaml``.
    """
    env_path = os.environ.get(PARAMS_PATH_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_PARAMS_PATH.expanduser()


def load_parameters_or_default(path: str | Path | None = None) -> ParametersSnapshot:
    """
    Load a snapshot from ``path`` (default location when None).

    Never raises: a missing, unreadable or malformed file yields the built-in
    defaults.
    """
    params_path = Path(path) if path is not None else default_params_path()
    if not params_path.exists():
        return ParametersSnapshot()
    try:
        with params_path.open("r", encoding="utf-8") as fh:
            raw: Any = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not read %s, using defaults: %s", params_path, exc)
        return ParametersSnapshot()

    if not isinstance(raw, dict):
        logger.warning("Ignoring %s: expected a mapping, got %s", params_path, type(raw).__name__)
        return ParametersSnapshot()
    return ParametersSnapshot.from_mapping(raw)


def save_parameters(path: str | Path | None, snapshot: ParametersSnapshot) -> bool:
    """
    Write ``snapshot`` to ``path``, creating parent directories.

    Failures are logged and reported through the return value only.
    """
    params_path = Path(path) if path is not None else default_params_path()
    try:
        if params_path.parent and not params_path.parent.exists():
            params_path.parent.mkdir(parents=True, exist_ok=True)
        with params_path.open("w", encoding="utf-8") as fh:
            yaml.safe_dump(
                snapshot.to_mapping(),
                fh,
                default_flow_style=False,
                sort_keys=False,
            )
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not save parameters to %s: %s", params_path, exc)
        return False
    return True


__all__ = [
    "PARAMS_PATH_ENV",
    "default_params_path",
    "load_parameters_or_default",
    "save_parameters",
]
