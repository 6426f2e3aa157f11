"""reward_persist.settings

YAML settings for import runs.

Example file:

    max_bind_params: 65535
    report_dir: ./artifacts/reports
    write_report: true

Every key is optional; CLI flags override whatever the file sets.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

# PostgreSQL's wire protocol counts bind parameters with an unsigned 16-bit integer.
MAX_BIND_PARAMS_LIMIT = 65535

KNOWN_KEYS = frozenset({"max_bind_params", "report_dir", "write_report"})


class SettingsValidationError(ValueError):
    """Raised when a settings file fails validation."""


@dataclass(frozen=True)
class ImportSettings:
    max_bind_params: int = MAX_BIND_PARAMS_LIMIT
    report_dir: Path = field(default_factory=lambda: Path("./artifacts/reports"))
    write_report: bool = True

    def with_overrides(self, **overrides: Any) -> ImportSettings:
        """Return a copy with every non-None override applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if "max_bind_params" in values:
            _check_max_bind_params(values["max_bind_params"])
        return replace(self, **values)


def _check_max_bind_params(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SettingsValidationError(f"max_bind_params must be an integer, got {value!r}.")
    if not 1 <= value <= MAX_BIND_PARAMS_LIMIT:
        raise SettingsValidationError(
            f"max_bind_params {value} must be in [1, {MAX_BIND_PARAMS_LIMIT}]."
        )
    return value


def validate_settings(data: dict[str, Any]) -> None:
    if not isinstance(data, dict):
        raise SettingsValidationError("YAML root must be a mapping.")

    unknown = set(data.keys()) - KNOWN_KEYS
    if unknown:
        raise SettingsValidationError(f"Unknown settings keys: {sorted(unknown)}")

    if "max_bind_params" in data:
        _check_max_bind_params(data["max_bind_params"])

    if "report_dir" in data and not isinstance(data["report_dir"], str):
        raise SettingsValidationError("report_dir must be a string path.")

    if "write_report" in data and not isinstance(data["write_report"], bool):
        raise SettingsValidationError("write_report must be true or false.")


def load_settings(yaml_path: Path | None) -> ImportSettings:
    """Load settings from yaml_path, or return defaults when no path is given.

    Raises:
        SettingsValidationError: If the file content is invalid.
        FileNotFoundError: If yaml_path does not exist.
    """
    if yaml_path is None:
        return ImportSettings()
    data = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    if data is None:
        return ImportSettings()
    validate_settings(data)
    settings = ImportSettings()
    if "report_dir" in data:
        data = {**data, "report_dir": Path(data["report_dir"])}
    return replace(settings, **data)
