"""Shared utilities for the collaboration client."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Iterator, List, Sequence, TypeVar


T = TypeVar("T")


class CollabClientError(Exception):
    """Base exception for collaboration client errors."""


class ConfigError(CollabClientError):
    """Raised when configuration is invalid or missing."""


class EncryptionError(CollabClientError):
    """Raised when encryption or decryption fails."""


class RequestError(CollabClientError):
    """Raised when an HTTP request fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
        options: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.options = options or {}


class BatchError(CollabClientError):
    """Raised when a batched request cannot be satisfied."""


class AvatarError(BatchError):
    """Raised when an avatar url cannot be retrieved."""


class ServiceError(CollabClientError):
    """Raised when a service call receives invalid arguments."""


def setup_logging(log_level: int = logging.INFO) -> None:
    """
    Configure global logging.

    Args:
        log_level: Logging verbosity level.
    """
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """
    Split a sequence into lists of at most ``size`` items.

    Args:
        items: Items to split.
        size: Maximum chunk length.

    Returns:
        List of chunks, in order.
    """
    if size <= 0:
        raise ValueError("Chunk size must be greater than 0.")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def uniq(values: Iterable[T]) -> List[T]:
    """Remove duplicates while preserving order."""
    seen = []
    unique: List[T] = []
    for value in values:
        if value in seen:
            continue
        seen.append(value)
        unique.append(value)
    return unique


def camel_case(value: str) -> str:
    """
    Convert ``encrypted_displayName`` style names to camelCase.

    Args:
        value: Name containing underscores, dashes or spaces.

    Returns:
        camelCase name.
    """
    parts = [part for part in re.split(r"[_\-\s]+", value) if part]
    if not parts:
        return ""
    head, tail = parts[0], parts[1:]
    return head[:1].lower() + head[1:] + "".join(
        part[:1].upper() + part[1:] for part in tail
    )


def iter_items(container: Any) -> Iterator[Any]:
    """
    Iterate ``container["items"]`` when it is a list.

    Args:
        container: Mapping that may hold an ``items`` list.

    Returns:
        Iterator over the items, empty when absent.
    """
    if not isinstance(container, dict):
        return iter(())
    items = container.get("items")
    if not isinstance(items, list):
        return iter(())
    return iter(items)
