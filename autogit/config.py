"""Configuration management for autogit."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigError

CONFIG_DIR_NAME = ".autogit"
CONFIG_FILE_NAME = "config.json"

COMMIT_MODES = ("periodic", "intelligent")
COMMIT_THRESHOLDS = ("any", "trivial", "minor", "medium", "major", "critical")

DEFAULT_MODELS = {
    "openai": {
        "model": "gpt-4.1-mini",
        "endpoint": "https://api.openai.com/v1",
        "api_key_env": "OPENAI_API_KEY",
    },
    "anthropic": {
        "model": "claude-3-5-haiku-latest",
        "endpoint": "https://api.anthropic.com",
        "api_key_env": "ANTHROPIC_API_KEY",
    },
    "gemini": {
        "model": "gemini-2.0-flash",
        "endpoint": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "api_key_env": "GEMINI_API_KEY",
    },
    "xai": {
        "model": "grok-code-fast",
        "endpoint": "https://api.x.ai/v1",
        "api_key_env": "XAI_API_KEY",
    },
    "github": {
        "model": "openai/gpt-4.1-mini",
        "endpoint": "https://models.github.ai/inference",
        "api_key_env": "GITHUB_TOKEN",
    },
}

_FUZZY_ENV_HINTS = {
    "openai": ["OPENAI", "OPENAI_API", "OA_KEY"],
    "anthropic": ["ANTHROPIC", "CLAUDE"],
    "gemini": ["GEMINI", "GOOGLE_API_KEY"],
    "xai": ["XAI", "GROK"],
    "github": ["GITHUB_TOKEN", "GH_TOKEN", "GH_MODELS"],
}

# Paths the watcher never reports. Regexes matched against the path relative
# to the repository root, using forward slashes.
DEFAULT_IGNORE_PATTERNS: List[str] = [
    r"(^|/)\.git(/|$)",
    r"(^|/)\.[^/]+$",
    r"(^|/)node_modules/",
    r"(^|/)__pycache__/",
    r"(^|/)\.DS_Store$",
    r"(^|/)(Thumbs\.db|desktop\.ini)$",
    r"\.(log|tmp|temp|swp|swo|pyc)$",
    r"~$",
    r"(^|/)(dist|build|coverage)/",
    r"(^|/)(package-lock\.json|yarn\.lock|pnpm-lock\.yaml)$",
]

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class Config:
    """Runtime configuration for autogit."""

    provider: str
    model: str
    llm_endpoint: str
    api_key_env: str
    git_repo_path: str = "."
    max_commit_length: int = 72
    # Watch / orchestration
    commit_mode: str = "periodic"
    debounce_seconds: float = 30.0
    settle_seconds: float = 300.0
    min_interval_seconds: float = 1800.0
    buffer_seconds: float = 30.0
    commit_threshold: str = "medium"
    require_completeness: bool = True
    cancel_on_new_changes: bool = True
    push_enabled: bool = True
    max_calls_per_minute: int = 15
    watch_paths: List[str] = field(default_factory=lambda: ["."])
    ignore_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS)
    )
    # Error surfacing
    interactive_on_error: bool = True
    enable_suggestions: bool = True
    request_timeout: float = 60.0

    def resolve_api_key(self) -> Optional[str]:
        """Return the API key from the configured environment variable."""
        return os.environ.get(self.api_key_env)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise configuration to a dict for persistence."""
        return asdict(self)

    @property
    def intelligent(self) -> bool:
        return self.commit_mode == "intelligent"

    def validate(self) -> "Config":
        """Raise ConfigError when a value cannot drive a watch session."""
        if self.commit_mode not in COMMIT_MODES:
            raise ConfigError(
                f"Unknown commit mode '{self.commit_mode}' "
                f"(expected one of: {', '.join(COMMIT_MODES)})"
            )
        if self.commit_threshold not in COMMIT_THRESHOLDS:
            raise ConfigError(
                f"Unknown commit threshold '{self.commit_threshold}' "
                f"(expected one of: {', '.join(COMMIT_THRESHOLDS)})"
            )
        for name in (
            "debounce_seconds",
            "settle_seconds",
            "min_interval_seconds",
            "buffer_seconds",
        ):
            if float(getattr(self, name)) < 0:
                raise ConfigError(f"{name} must not be negative")
        if int(self.max_calls_per_minute) < 1:
            raise ConfigError("max_calls_per_minute must be at least 1")
        return self


_CONFIG_STATE: Dict[str, Optional[Config]] = {"active": None}


def _ensure_path(path_like: Optional[Path]) -> Path:
    if path_like is None:
        return Path.cwd().resolve(strict=False)
    return Path(path_like).expanduser().resolve(strict=False)


def _config_file(repo_root: Optional[Path] = None) -> Path:
    return _ensure_path(repo_root) / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def save_config(config: Config, repo_root: Optional[Path] = None) -> Path:
    """Persist configuration JSON within the repository."""
    cfg_path = _config_file(repo_root)
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    data = config.to_dict()
    base_root = _ensure_path(repo_root)
    candidate = Path(data.get("git_repo_path") or ".").expanduser()
    if not candidate.is_absolute():
        candidate = base_root / candidate
    data["git_repo_path"] = str(candidate.resolve(strict=False))
    config.git_repo_path = data["git_repo_path"]
    cfg_path.write_text(json.dumps(data, indent=2))
    return cfg_path


def load_persisted_config(
    repo_root: Optional[Path] = None,
) -> Optional[Config]:
    cfg_path = _config_file(repo_root)
    if not cfg_path.exists():
        return None
    try:
        data = json.loads(cfg_path.read_text())
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Could not parse {cfg_path}: {exc}") from exc
    known = {f.name for f in fields(Config)}
    data = {key: value for key, value in data.items() if key in known}
    resolved_root = _ensure_path(repo_root) if repo_root else cfg_path.parent.parent
    git_path = data.get("git_repo_path")
    if git_path:
        candidate = Path(git_path).expanduser()
        if not candidate.is_absolute():
            candidate = resolved_root / candidate
        data["git_repo_path"] = str(candidate.resolve(strict=False))
    else:
        data["git_repo_path"] = str(resolved_root)
    try:
        return Config(**data)
    except TypeError as exc:
        raise ConfigError(f"Incomplete configuration in {cfg_path}: {exc}") from exc


def detect_available_providers(
    env: Optional[Dict[str, str]] = None,
) -> Dict[str, List[str]]:
    """Return mapping of provider -> matching env vars found."""
    env_dict: Dict[str, str] = dict(env or os.environ)
    detected: Dict[str, List[str]] = {p: [] for p in DEFAULT_MODELS}
    for provider, defaults in DEFAULT_MODELS.items():
        key_name = defaults["api_key_env"]
        if key_name in env_dict:
            detected[provider].append(key_name)
        hints = _FUZZY_ENV_HINTS.get(provider, [])
        for env_key in env_dict:
            if env_key in detected[provider]:
                continue
            for hint in hints:
                if hint.lower() in env_key.lower():
                    detected[provider].append(env_key)
                    break
    return detected


def _env_bool(name: str) -> Optional[bool]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in _TRUTHY


def _env_number(name: str, *, scale: float = 1.0) -> Optional[float]:
    raw = os.environ.get(name)
    if not raw:
        return None
    try:
        return float(raw) * scale
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got '{raw}'") from exc


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


# (config field, seconds variable, legacy millisecond variable)
_DURATION_ENV = (
    ("debounce_seconds", "AUTO_GIT_DEBOUNCE_SECONDS", "AUTO_GIT_DEBOUNCE_MS"),
    ("settle_seconds", "AUTO_GIT_SETTLE_SECONDS", "AUTO_GIT_ACTIVITY_SETTLE_TIME"),
    (
        "min_interval_seconds",
        "AUTO_GIT_MIN_INTERVAL_SECONDS",
        "AUTO_GIT_MIN_TIME_BETWEEN_COMMITS",
    ),
    ("buffer_seconds", "AUTO_GIT_BUFFER_TIME_SECONDS", None),
)

_BOOL_ENV = (
    ("require_completeness", "AUTO_GIT_REQUIRE_COMPLETENESS"),
    ("cancel_on_new_changes", "AUTO_GIT_CANCEL_ON_NEW_CHANGES"),
    ("interactive_on_error", "AUTO_GIT_INTERACTIVE_ON_ERROR"),
    ("enable_suggestions", "AUTO_GIT_ENABLE_SUGGESTIONS"),
)


def _watch_settings_from_env() -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    mode = os.environ.get("AUTO_GIT_COMMIT_MODE", "").strip().lower()
    if mode in COMMIT_MODES:
        settings["commit_mode"] = mode
    threshold = os.environ.get("AUTO_GIT_COMMIT_THRESHOLD", "").strip().lower()
    if threshold in COMMIT_THRESHOLDS:
        settings["commit_threshold"] = threshold
    for name, seconds_var, ms_var in _DURATION_ENV:
        value = _env_number(seconds_var)
        if value is None and ms_var:
            value = _env_number(ms_var, scale=0.001)
        if value is not None:
            settings[name] = value
    for name, var in _BOOL_ENV:
        flag = _env_bool(var)
        if flag is not None:
            settings[name] = flag
    no_push = _env_bool("AUTO_GIT_NO_PUSH")
    if no_push is not None:
        settings["push_enabled"] = not no_push
    max_calls = _env_number("AUTO_GIT_MAX_CALLS_PER_MINUTE")
    if max_calls is not None:
        settings["max_calls_per_minute"] = int(max_calls)
    timeout = _env_number("AUTO_GIT_LLM_REQUEST_TIMEOUT")
    if timeout is not None:
        settings["request_timeout"] = timeout
    watch_paths = os.environ.get("AUTO_GIT_WATCH_PATHS")
    if watch_paths:
        settings["watch_paths"] = [
            p.strip() for p in watch_paths.split(",") if p.strip()
        ]
    return settings


_WATCH_FIELDS = {
    "commit_mode": str,
    "debounce_seconds": float,
    "settle_seconds": float,
    "min_interval_seconds": float,
    "buffer_seconds": float,
    "commit_threshold": str,
    "require_completeness": _coerce_bool,
    "cancel_on_new_changes": _coerce_bool,
    "push_enabled": _coerce_bool,
    "max_calls_per_minute": int,
    "interactive_on_error": _coerce_bool,
    "enable_suggestions": _coerce_bool,
    "request_timeout": float,
}


def load_config(
    *,
    repo_root: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Config:
    """Build configuration from config file, environment and overrides."""

    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}
    repo_root = _ensure_path(repo_root)
    persisted = load_persisted_config(repo_root)
    detected = detect_available_providers()

    provider_from_env = os.environ.get("AUTO_GIT_PROVIDER")
    provider_override = overrides.get("provider") or provider_from_env
    if persisted and not provider_override:
        provider = persisted.provider
    else:
        provider = provider_override or _auto_select_provider(detected)
    if provider not in DEFAULT_MODELS:
        provider = "openai"

    defaults = DEFAULT_MODELS[provider]
    same_provider = persisted is not None and persisted.provider == provider

    model = (
        overrides.get("model")
        or (persisted.model if same_provider else None)
        or os.environ.get("AUTO_GIT_LLM_MODEL")
        or defaults["model"]
    )
    endpoint = (
        overrides.get("endpoint")
        or (persisted.llm_endpoint if same_provider else None)
        or os.environ.get("AUTO_GIT_LLM_ENDPOINT")
        or defaults["endpoint"]
    )
    api_key_env = (
        overrides.get("api_key_env")
        or (persisted.api_key_env if same_provider else None)
        or _select_env_var_for_provider(provider)
    )

    git_repo_path_raw = (
        overrides.get("repo_path")
        or os.environ.get("AUTO_GIT_REPO_PATH")
        or (persisted.git_repo_path if persisted else str(repo_root))
    )
    git_repo_candidate = Path(git_repo_path_raw).expanduser()
    if not git_repo_candidate.is_absolute():
        git_repo_candidate = repo_root / git_repo_candidate
    git_repo_path = str(git_repo_candidate.resolve(strict=False))

    max_commit_length = int(
        overrides.get("max_commit_length")
        or os.environ.get("AUTO_GIT_MAX_COMMIT_LENGTH")
        or (persisted.max_commit_length if persisted else 72)
    )

    # Watch settings: persisted < environment < overrides
    watch: Dict[str, Any] = {}
    if persisted is not None:
        for name in _WATCH_FIELDS:
            watch[name] = getattr(persisted, name)
        watch["watch_paths"] = list(persisted.watch_paths)
        watch["ignore_patterns"] = list(persisted.ignore_patterns)
    watch.update(_watch_settings_from_env())
    for name, cast in _WATCH_FIELDS.items():
        if name in overrides:
            watch[name] = cast(overrides[name])
    if overrides.get("watch_paths"):
        watch["watch_paths"] = list(overrides["watch_paths"])

    config = Config(
        provider=provider,
        model=model,
        llm_endpoint=endpoint,
        api_key_env=api_key_env or defaults["api_key_env"],
        git_repo_path=git_repo_path,
        max_commit_length=max_commit_length,
        **watch,
    )
    config.validate()

    set_active_config(config)
    return config


def _select_env_var_for_provider(provider: str) -> Optional[str]:
    defaults = DEFAULT_MODELS[provider]["api_key_env"]
    env_matches = detect_available_providers().get(provider, [])
    if defaults in env_matches:
        return defaults
    return env_matches[0] if env_matches else defaults


def _auto_select_provider(
    detected: Optional[Dict[str, List[str]]] = None,
) -> str:
    if detected is None:
        detected = detect_available_providers()
    for provider in ("openai", "anthropic", "gemini", "xai", "github"):
        if detected.get(provider):
            return provider
    return "openai"


def set_active_config(config: Config) -> None:
    _CONFIG_STATE["active"] = config


def get_active_config() -> Config:
    active = _CONFIG_STATE.get("active")
    if active is None:
        return load_config()
    return active


def clear_active_config() -> None:
    _CONFIG_STATE["active"] = None

