import os
from pathlib import Path
from typing import Dict, Optional

CONFIG_DIR = Path(
    os.environ.get("GCLOUD_SWITCH_HOME", Path.home() / ".config" / "gcloud-switch")
)
CONFIG_FILE = CONFIG_DIR / "config"
LOG_FILE = CONFIG_DIR / "gcloud-switch.log"

DEFAULT_BRANCH = "main"
DEFAULT_VALIDATION_TIMEOUT = 15.0


def get_gcloud_config_dir() -> Path:
    """
    locate gcloud's configuration directory.

    gcloud uses ~/.config/gcloud on every platform unless CLOUDSDK_CONFIG is set.
    """
    custom = os.environ.get("CLOUDSDK_CONFIG")
    if custom:
        return Path(custom)
    return Path.home() / ".config" / "gcloud"


def read_config(config_file: Path = CONFIG_FILE) -> Dict[str, str]:
    """read all KEY=value pairs from the config file."""
    config = {}
    if not config_file.exists():
        return config

    try:
        with open(config_file, "r") as f:
            for line in f:
                line = line.strip()
                if "=" in line:
                    key, value = line.split("=", 1)
                    config[key] = value
    except (IOError, PermissionError, OSError):
        # if we can't read the file, treat as not configured
        return {}
    return config


def write_config(values: Dict[str, Optional[str]], config_file: Path = CONFIG_FILE):
    """update config values, preserving keys not mentioned. None removes a key."""
    config_file.parent.mkdir(parents=True, exist_ok=True)

    config = read_config(config_file)
    for key, value in values.items():
        if value is None:
            config.pop(key, None)
        else:
            config[key] = value

    try:
        with open(config_file, "w") as f:
            for key, value in config.items():
                f.write(f"{key}={value}\n")
    except (IOError, PermissionError, OSError) as e:
        raise RuntimeError(f"failed to write config file: {e}") from e


def get_sync_remote(config_file: Path = CONFIG_FILE) -> Optional[str]:
    """get the configured sync remote URL."""
    return read_config(config_file).get("SYNC_REMOTE_URL") or None


def get_sync_branch(config_file: Path = CONFIG_FILE) -> str:
    return read_config(config_file).get("SYNC_BRANCH") or DEFAULT_BRANCH


def set_sync_remote(url: str, branch: str = DEFAULT_BRANCH, config_file: Path = CONFIG_FILE):
    """set the sync remote, preserving other config values."""
    write_config({"SYNC_REMOTE_URL": url, "SYNC_BRANCH": branch}, config_file)


def get_validation_timeout(config_file: Path = CONFIG_FILE) -> float:
    """seconds before a credential check gives up and reports expired."""
    raw = read_config(config_file).get("VALIDATION_TIMEOUT")
    if not raw:
        return DEFAULT_VALIDATION_TIMEOUT
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_VALIDATION_TIMEOUT
    return value if value > 0 else DEFAULT_VALIDATION_TIMEOUT
