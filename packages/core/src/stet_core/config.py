import os
import re
from pathlib import Path
from typing import Optional

import yaml

from stet_core.errors import ConfigError

DEFAULT_CONFIG: dict = {
    "provider": "ollama",  # "ollama" (native API) or "openai" (any OpenAI-compatible server)
    "model": "qwen3-coder:30b",
    "base_url": "http://localhost:11434",
    "api_key": None,
    "timeout": 300,  # seconds per model call
    "temperature": 0.2,
    "context_limit": 32768,
    "warn_threshold": 0.9,
    "num_ctx": None,  # None = let the server decide
    "state_dir": None,  # None = <repo>/.review
    "worktree_root": None,  # None = <repo>/.review/worktrees
    "strictness": "default",
    "nitpicky": False,
    "rag_symbol_max_definitions": 10,
    "rag_symbol_max_tokens": 0,
    "history_max_records": 1000,
    "suppression_enabled": True,
    "suppression_history_count": 50,
    "suppression_max_examples": 30,
    "exclude": [],  # fnmatch patterns or directory prefixes to skip, on top of the built-in list
}

CONFIG_FILENAME = "config.yml"

# Environment variable → (config key, parser)
_ENV_OVERRIDES = {
    "STET_PROVIDER": ("provider", str),
    "STET_MODEL": ("model", str),
    "STET_OLLAMA_BASE_URL": ("base_url", str),
    "STET_API_KEY": ("api_key", str),
    "STET_CONTEXT_LIMIT": ("context_limit", int),
    "STET_WARN_THRESHOLD": ("warn_threshold", float),
    "STET_TIMEOUT": ("timeout", "duration"),
    "STET_STATE_DIR": ("state_dir", str),
    "STET_WORKTREE_ROOT": ("worktree_root", str),
    "STET_STRICTNESS": ("strictness", str),
    "STET_NITPICKY": ("nitpicky", "bool"),
}

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h)?$")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}


def parse_duration(value) -> float:
    """Parse seconds given as a number or a string like "90", "90s", "5m"."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _DURATION_RE.match(str(value).strip())
    if not match:
        raise ConfigError(f"Invalid timeout {value!r}: use seconds or a duration like 90s or 5m.")
    return float(match.group(1)) * _DURATION_UNITS[match.group(2) or "s"]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(value)


def global_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "stet" / CONFIG_FILENAME


def _read_yaml(path: Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}.") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping of settings.")
    return data


def load_config(
    repo_root: Optional[str] = None,
    config_path: Optional[str] = None,
    cli_overrides: Optional[dict] = None,
    env: Optional[dict] = None,
) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. Global file: $XDG_CONFIG_HOME/stet/config.yml (or ~/.config/stet/config.yml)
      3. Repo file: <repo>/.review/config.yml, or ``config_path`` when given
      4. STET_* environment variables
      5. CLI argument overrides
    """
    env = os.environ if env is None else env
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    paths = [global_config_path()]
    if config_path:
        paths.append(Path(config_path))
    elif repo_root:
        paths.append(Path(repo_root) / ".review" / CONFIG_FILENAME)
    for path in paths:
        if path.exists():
            config.update(_read_yaml(path))

    for var, (key, parser) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            if parser == "duration":
                config[key] = parse_duration(raw)
            elif parser == "bool":
                config[key] = _parse_bool(raw)
            else:
                config[key] = parser(raw)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {var}: {raw!r}.") from e

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config["timeout"] = parse_duration(config["timeout"])
    config["repo_root"] = str(repo_root) if repo_root else None
    return config


def state_dir_for(config: dict) -> Path:
    """Return the state directory: configured path, or <repo>/.review."""
    configured = config.get("state_dir")
    if configured:
        return Path(configured).expanduser()
    if not config.get("repo_root"):
        raise ConfigError("No repository root configured.")
    return Path(config["repo_root"]) / ".review"
