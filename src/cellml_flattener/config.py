from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

INITIAL_VALUE_POLICIES = ("abort", "continue")


@dataclass
class AppConfig:
    """Top-level configuration for a flatten/compact run.

    - `root_dir`: Directory the `.env` file was looked up in.
    - `initial_value_policy`: What the flattener does with an initial value it
      cannot resolve: `abort` the pass or `continue` and log.
    - `http_timeout`: Seconds to wait when fetching models over HTTP.
    - `report_indent`: Indent string used by the diagnostics report.
    - `verbose`: Default for the CLI `-v` flag.
    """

    root_dir: Path
    initial_value_policy: str = "abort"
    http_timeout: float = 30.0
    report_indent: str = "  "
    verbose: bool = False


def detect_repo_root() -> Path:
    """Walk upwards from the working directory until a `.env` or `pyproject.toml` exists.

    Falls back to current working directory.
    """
    cwd = Path.cwd().resolve()
    for p in [cwd] + list(cwd.parents):
        if (p / ".env").exists() or (p / "pyproject.toml").exists():
            return p
    return cwd


def load_config() -> AppConfig:
    root = detect_repo_root()
    load_dotenv(root / ".env")

    policy = os.getenv("CELLML_INITIAL_VALUE_POLICY", "abort").strip().lower()
    if policy not in INITIAL_VALUE_POLICIES:
        raise ValueError(
            f"CELLML_INITIAL_VALUE_POLICY must be one of {INITIAL_VALUE_POLICIES}, got '{policy}'"
        )
    return AppConfig(
        root_dir=root,
        initial_value_policy=policy,
        http_timeout=float(os.getenv("CELLML_HTTP_TIMEOUT", "30")),
        report_indent=os.getenv("CELLML_REPORT_INDENT", "  "),
        verbose=os.getenv("CELLML_VERBOSE", "0") in {"1", "true", "True"},
    )
