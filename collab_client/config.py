"""Configuration management for the collaboration client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Dict, Optional, Tuple

from dotenv import load_dotenv

from .utils import ConfigError

ENV_TOKEN = "COLLAB_ACCESS_TOKEN"
ENV_HYDRA_URL = "COLLAB_HYDRA_URL"
ENV_CONVERSATION_URL = "COLLAB_CONVERSATION_URL"
ENV_AVATAR_URL = "COLLAB_AVATAR_URL"
ENV_BOARD_URL = "COLLAB_BOARD_URL"
ENV_FAILURE_MESSAGE = "DECRYPTION_FAILURE_MESSAGE"
ENV_KEEP_ENCRYPTED = "KEEP_ENCRYPTED_PROPERTIES"
ENV_BATCHER_WAIT = "BATCHER_WAIT"
ENV_BATCHER_MAX_CALLS = "BATCHER_MAX_CALLS"
ENV_AVATAR_SIZE = "AVATAR_DEFAULT_SIZE"
ENV_BOARD_ADD_PAGE = "BOARD_CONTENTS_PER_PAGE_FOR_ADD"
ENV_BOARD_GET_PAGE = "BOARD_CONTENTS_PER_PAGE_FOR_GET"
ENV_RETRIES = "HTTP_RETRIES"
ENV_TIMEOUT = "HTTP_TIMEOUT"

DEFAULT_FAILURE_MESSAGE = "This message cannot be decrypted"
DEFAULT_AVATAR_SIZES: Tuple[int, ...] = (40, 50, 80, 110, 135, 192, 640, 1600)


def _base_dir() -> Path:
    return Path(__file__).resolve().parents[1]


def _env_path() -> Path:
    return _base_dir() / ".env"


@dataclass(frozen=True)
class Config:
    """Singleton configuration object."""

    access_token: str
    services: Dict[str, str] = field(default_factory=dict)
    decryption_failure_message: str = DEFAULT_FAILURE_MESSAGE
    keep_encrypted_properties: bool = False
    batcher_wait: float = 0.1
    batcher_max_calls: int = 100
    avatar_default_size: int = 80
    avatar_sizes: Tuple[int, ...] = DEFAULT_AVATAR_SIZES
    board_contents_per_page_for_add: int = 150
    board_contents_per_page_for_get: int = 1000
    http_retries: int = 3
    http_timeout: float = 30.0

    _instance: ClassVar[Optional["Config"]] = None

    @classmethod
    def get_instance(cls) -> "Config":
        """
        Retrieve a singleton instance of Config.

        Returns:
            Config singleton instance.
        """
        if cls._instance is None:
            cls._instance = load_config()
        return cls._instance

    def service_url(self, name: str) -> str:
        """
        Look up the base url of a named service.

        Args:
            name: Service name, e.g. ``hydra`` or ``avatar``.

        Returns:
            Base url without a trailing slash.
        """
        try:
            return self.services[name].rstrip("/")
        except KeyError as exc:
            raise ConfigError(f"No url configured for service '{name}'.") from exc


def _parse_int(value: str, name: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid integer for {name}.") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be greater than 0.")
    return parsed


def _parse_float(value: str, name: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid number for {name}.") from exc
    if parsed < 0:
        raise ConfigError(f"{name} must not be negative.")
    return parsed


def _parse_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off", ""}:
        return False
    raise ConfigError(f"Invalid boolean for {name}.")


def load_config(env_file: Optional[Path] = None) -> Config:
    """
    Load and validate configuration from the environment and a .env file.

    Args:
        env_file: Optional .env path override.

    Returns:
        Config instance.
    """
    env_file = env_file or _env_path()
    if env_file.exists():
        load_dotenv(env_file)

    token = os.getenv(ENV_TOKEN, "").strip()
    if not token:
        raise ConfigError(f"{ENV_TOKEN} is required.")

    services = {
        "hydra": os.getenv(ENV_HYDRA_URL, "https://webexapis.com/v1").strip(),
        "conversation": os.getenv(
            ENV_CONVERSATION_URL, "https://conv-a.wbx2.com/conversation/api/v1"
        ).strip(),
        "avatar": os.getenv(ENV_AVATAR_URL, "https://avatar-a.wbx2.com/avatar/v1").strip(),
        "board": os.getenv(ENV_BOARD_URL, "https://board-a.wbx2.com/board/api/v1").strip(),
    }

    return Config(
        access_token=token,
        services=services,
        decryption_failure_message=os.getenv(
            ENV_FAILURE_MESSAGE, DEFAULT_FAILURE_MESSAGE
        ),
        keep_encrypted_properties=_parse_bool(
            os.getenv(ENV_KEEP_ENCRYPTED, "false"), ENV_KEEP_ENCRYPTED
        ),
        batcher_wait=_parse_float(os.getenv(ENV_BATCHER_WAIT, "0.1"), ENV_BATCHER_WAIT),
        batcher_max_calls=_parse_int(
            os.getenv(ENV_BATCHER_MAX_CALLS, "100").strip(), ENV_BATCHER_MAX_CALLS
        ),
        avatar_default_size=_parse_int(
            os.getenv(ENV_AVATAR_SIZE, "80").strip(), ENV_AVATAR_SIZE
        ),
        board_contents_per_page_for_add=_parse_int(
            os.getenv(ENV_BOARD_ADD_PAGE, "150").strip(), ENV_BOARD_ADD_PAGE
        ),
        board_contents_per_page_for_get=_parse_int(
            os.getenv(ENV_BOARD_GET_PAGE, "1000").strip(), ENV_BOARD_GET_PAGE
        ),
        http_retries=_parse_int(os.getenv(ENV_RETRIES, "3").strip(), ENV_RETRIES),
        http_timeout=_parse_float(os.getenv(ENV_TIMEOUT, "30").strip(), ENV_TIMEOUT),
    )
