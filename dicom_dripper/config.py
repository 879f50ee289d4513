"""
config.py - Runtime settings for dicom-dripper.

Settings live in an optional ``config.yaml`` at the repo root, grouped in
sections:

    logging:    {level: INFO, format: "..."}
    normalizer: {use_voi_window: true}
    encoder:    {png_compress_level: 6}
    batch:      {max_workers: 1}

They are flattened into an immutable ``Settings`` value.  Callers either use
the module-level ``SETTINGS`` loaded at import time or pass their own
``Settings`` down explicitly; nothing mutates the shared instance.
"""

import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

# Resolve the config file relative to the repo root, not the CWD,
# so imports work regardless of where the script is launched from.
_REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_CONFIG_PATH = os.path.join(_REPO_ROOT, "config.yaml")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    log_format: str = "%(levelname)-8s %(name)s: %(message)s"
    use_voi_window: bool = True
    png_compress_level: int = 6
    max_workers: int = 1


# (section, key) in the YAML file -> (Settings field, coercion)
_YAML_FIELDS = {
    ("logging", "level"): ("log_level", lambda v: str(v).upper()),
    ("logging", "format"): ("log_format", str),
    ("normalizer", "use_voi_window"): ("use_voi_window", bool),
    ("encoder", "png_compress_level"): ("png_compress_level", int),
    ("batch", "max_workers"): ("max_workers", int),
}


def settings_from_mapping(raw: Mapping[str, Any], base: Settings = Settings()) -> Settings:
    """
    Overlay the sectioned mapping *raw* on *base*.

    Keys that are absent keep their value from *base*; unknown keys are
    logged and ignored.

    Raises
    ------
    ValueError
        A section that is not a mapping, a value of the wrong type, or an
        unknown logging level.
    """
    changes: dict[str, Any] = {}
    for section, values in raw.items():
        if values is None:
            continue
        if not isinstance(values, Mapping):
            raise ValueError(f"Config section '{section}' must be a mapping, got {values!r}")
        for key, value in values.items():
            target = _YAML_FIELDS.get((section, key))
            if target is None:
                logger.warning("Ignoring unknown config key %s.%s", section, key)
                continue
            name, coerce = target
            try:
                changes[name] = coerce(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Bad value for {section}.{key}: {value!r}") from exc

    settings = replace(base, **changes)
    if settings.log_level not in LOG_LEVELS:
        raise ValueError(
            f"Unknown logging level {settings.log_level!r}; expected one of {', '.join(LOG_LEVELS)}"
        )
    return settings


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Read a YAML config file into Settings.

    Parameters
    ----------
    config_path : str, optional
        Path to a YAML file. Defaults to the repo-root config.yaml.
        A missing file yields the defaults.

    Returns
    -------
    Settings
    """
    config_path = config_path or _CONFIG_PATH
    if not os.path.exists(config_path):
        return Settings()
    with open(config_path, "r") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{config_path}: top level must be a mapping of sections")
    return settings_from_mapping(raw)


# Loaded once at import; pass a Settings explicitly to override per call.
SETTINGS = load_settings()
