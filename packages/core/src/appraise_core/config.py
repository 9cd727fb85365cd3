import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "target_ref": "refs/heads/master",
    "reflow_width": 80,
    "context_lines": 5,
    "diff_opts": [],  # extra arguments passed to every diff, e.g. ["--ignore-all-space"]
    "web_host": "127.0.0.1",
    "web_port": 8080,
    "scan_root": ".",
    "log_level": "WARNING",
}


def load_config(config_path: str = ".appraise.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .appraise.yml in the current directory
      3. CLI argument overrides
      4. APPRAISE_* environment variables
    """
    config = {**DEFAULT_CONFIG, "diff_opts": list(DEFAULT_CONFIG["diff_opts"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if os.environ.get("APPRAISE_LOG_LEVEL"):
        config["log_level"] = os.environ["APPRAISE_LOG_LEVEL"]
    # Overrides the repository's user.email as the author of new comments and requests.
    config["user"] = os.environ.get("APPRAISE_USER") or config.get("user")

    return config
