"""Decryption context, outcome type and field level decryption primitives.

Field primitives never raise: a failed field is replaced with the
configured failure message and reported as a ``PLACEHOLDER`` outcome so the
rest of the tree keeps decrypting.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ..config import DEFAULT_FAILURE_MESSAGE
from ..encryption.service import EncryptionService
from ..utils import EncryptionError, camel_case


logger = logging.getLogger(__name__)


class ObjectType(str, Enum):
    """Known ``objectType`` tags of decryptable nodes."""

    ACTIVITY = "activity"
    COMMENT = "comment"
    CONTENT = "content"
    CONVERSATION = "conversation"
    EVENT = "event"
    FILE = "file"
    IMAGE_URI = "imageURI"
    LINK = "link"
    MEETING_CONTAINER = "meetingContainer"
    MICROAPP_INSTANCE = "microappInstance"
    REACTION2 = "reaction2"
    REACTION2_SELF_SUMMARY = "reaction2SelfSummary"
    REACTION2_SUMMARY = "reaction2Summary"
    SUBMIT = "submit"
    THREAD = "thread"
    TRANSCODED_CONTENT = "transcodedContent"

    @classmethod
    def parse(cls, value: Any) -> Optional["ObjectType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class OutcomeStatus(str, Enum):
    DECRYPTED = "decrypted"
    PLACEHOLDER = "placeholder"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(frozen=True)
class FieldOutcome:
    """Result of decrypting one field (or one branch that broke unexpectedly)."""

    name: str
    status: OutcomeStatus
    key: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.status in (OutcomeStatus.PLACEHOLDER, OutcomeStatus.ERROR)


Handler = Callable[["DecryptionContext", Optional[str], Dict[str, Any]], Awaitable[List[FieldOutcome]]]


@dataclass(frozen=True)
class DecryptionContext:
    """Read-only configuration shared by every branch of one traversal."""

    encryption: EncryptionService
    failure_message: str = DEFAULT_FAILURE_MESSAGE
    keep_encrypted_properties: bool = False
    handlers: Mapping[ObjectType, Handler] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "handlers", MappingProxyType(dict(self.handlers)))


def _shadow_name(name: str) -> str:
    return camel_case(f"encrypted_{name}")


async def decrypt_text_prop(
    ctx: DecryptionContext, name: str, key: Optional[str], obj: Any
) -> FieldOutcome:
    """
    Decrypt ``obj[name]`` in place.

    Args:
        ctx: Decryption context.
        name: Field name.
        key: KMS key url.
        obj: Mapping holding the field.

    Returns:
        Outcome for the field.
    """
    if not isinstance(obj, dict) or not obj.get(name):
        return FieldOutcome(name, OutcomeStatus.SKIPPED, key)

    ciphertext = obj[name]
    try:
        if not key:
            raise EncryptionError(f"No encryption key available for {name}.")
        plaintext = await ctx.encryption.decrypt_text(key, ciphertext)
    except Exception as exc:
        logger.warning("failed to decrypt %s: %s", name, exc)
        obj[name] = ctx.failure_message
        return FieldOutcome(name, OutcomeStatus.PLACEHOLDER, key, exc)

    if ctx.keep_encrypted_properties:
        obj[_shadow_name(name)] = ciphertext
    obj[name] = plaintext
    return FieldOutcome(name, OutcomeStatus.DECRYPTED, key)


async def decrypt_card_item(
    ctx: DecryptionContext, index: int, key: Optional[str], array: Any
) -> FieldOutcome:
    """
    Decrypt ``array[index]`` in place when it is a string.

    Args:
        ctx: Decryption context.
        index: Position in the list.
        key: KMS key url.
        array: List of encrypted strings.

    Returns:
        Outcome for the element.
    """
    name = f"cards[{index}]"
    if (
        not isinstance(array, list)
        or isinstance(index, bool)
        or not isinstance(index, int)
        or index < 0
        or index >= len(array)
        or not isinstance(array[index], str)
    ):
        return FieldOutcome(name, OutcomeStatus.SKIPPED, key)

    try:
        if not key:
            raise EncryptionError("No encryption key available for card.")
        plaintext = await ctx.encryption.decrypt_text(key, array[index])
    except Exception as exc:
        logger.warning("failed to decrypt card at %s: %s", index, exc)
        array[index] = ctx.failure_message
        return FieldOutcome(name, OutcomeStatus.PLACEHOLDER, key, exc)

    array[index] = plaintext
    return FieldOutcome(name, OutcomeStatus.DECRYPTED, key)


async def decrypt_scr_prop(
    ctx: DecryptionContext, name: str, key: Optional[str], obj: Any
) -> FieldOutcome:
    """
    Decrypt a secure content reference (``scr`` or ``sslr``) in place.

    A failed reference keeps its ciphertext; a placeholder string cannot
    stand in for a structured descriptor.

    Args:
        ctx: Decryption context.
        name: Field name.
        key: KMS key url.
        obj: Mapping holding the field.

    Returns:
        Outcome for the field.
    """
    if not isinstance(obj, dict) or not obj.get(name):
        return FieldOutcome(name, OutcomeStatus.SKIPPED, key)

    try:
        if not key:
            raise EncryptionError(f"No encryption key available for {name}.")
        obj[name] = await ctx.encryption.decrypt_scr(key, obj[name])
    except Exception as exc:
        logger.warning("failed to decrypt %s: %s", name, exc)
        return FieldOutcome(name, OutcomeStatus.PLACEHOLDER, key, exc)
    return FieldOutcome(name, OutcomeStatus.DECRYPTED, key)
