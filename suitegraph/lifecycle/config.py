"""Run configuration file management.

Reads and writes the JSON file holding run-wide defaults: the timeout
applied to runnables that set none, the default test exclusivity of the
root suite and where reports are written.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from suitegraph.execution.constants import Exclusivity

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "default_timeout": 2.0,
    "test_exclusivity": Exclusivity.NONE.value,
    "report_path": None,
}


class RunConfig:
    """Manages the run configuration JSON file."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        if path is not None and path.exists():
            self._load()

    def _load(self) -> None:
        """Load config from the file, falling back to defaults if unreadable."""
        assert self.path is not None
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError):
            self._data = dict(DEFAULT_CONFIG)
            return
        if isinstance(data, dict):
            self._data = {**DEFAULT_CONFIG, **data}

    def save(self) -> None:
        """Write config to the file."""
        if self.path is None:
            raise ValueError("No config file path specified")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(self._data, f, indent=2)
            f.write("\n")

    @property
    def config(self) -> dict[str, Any]:
        """Get the full configuration dict."""
        return dict(self._data)

    @property
    def default_timeout(self) -> float | None:
        """Timeout in seconds for runnables without one (None or 0 = none)."""
        val = self._data.get("default_timeout", DEFAULT_CONFIG["default_timeout"])
        return float(val) if val else None

    @property
    def test_exclusivity(self) -> Exclusivity:
        """Default exclusivity of tests and hooks under the root suite.

        Raises:
            ValueError: If the stored value is not a known exclusivity.
        """
        return Exclusivity(
            self._data.get("test_exclusivity", DEFAULT_CONFIG["test_exclusivity"])
        )

    @property
    def report_path(self) -> Path | None:
        val = self._data.get("report_path")
        return Path(val) if val else None

    def set_config(
        self,
        default_timeout: float | None = None,
        test_exclusivity: Exclusivity | str | None = None,
        report_path: Path | str | None = None,
    ) -> None:
        """Update configuration values. Arguments left as None are unchanged."""
        if default_timeout is not None:
            self._data["default_timeout"] = default_timeout
        if test_exclusivity is not None:
            self._data["test_exclusivity"] = Exclusivity(test_exclusivity).value
        if report_path is not None:
            self._data["report_path"] = str(report_path)
