import os
from dataclasses import dataclass
from typing import Optional

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _get_int(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value}")
    return value


def _get_float(env, name):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _get_bool(env, name, default):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 5000
    client_origin: str = "http://localhost:3000"
    completion_url: str = "https://api.openai.com/v1/completions"
    completion_model: str = "gpt-3.5-turbo-instruct"
    completion_max_tokens: int = 150
    completion_timeout: Optional[float] = None
    echo_to_sender: bool = True
    history_size: int = 30
    max_message_length: int = 0
    log_level: str = "INFO"

    @property
    def completion_enabled(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        """Build settings from environment variables (``os.environ`` by default).

        Raises ``ValueError`` for values that do not parse.
        """
        if env is None:
            env = os.environ
        defaults = cls()
        return cls(
            api_key=env.get("OPENAI_API_KEY") or None,
            host=env.get("HOST", defaults.host),
            port=_get_int(env, "PORT", defaults.port),
            client_origin=env.get("CLIENT_ORIGIN", defaults.client_origin),
            completion_url=env.get("COMPLETION_URL", defaults.completion_url),
            completion_model=env.get("COMPLETION_MODEL", defaults.completion_model),
            completion_max_tokens=_get_int(env, "COMPLETION_MAX_TOKENS", defaults.completion_max_tokens),
            completion_timeout=_get_float(env, "COMPLETION_TIMEOUT"),
            echo_to_sender=_get_bool(env, "ECHO_TO_SENDER", defaults.echo_to_sender),
            history_size=_get_int(env, "HISTORY_SIZE", defaults.history_size),
            max_message_length=_get_int(env, "MAX_MESSAGE_LENGTH", defaults.max_message_length),
            log_level=env.get("LOG_LEVEL", defaults.log_level).upper(),
        )
