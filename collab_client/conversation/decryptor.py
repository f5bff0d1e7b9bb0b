"""Facade over the decryption routines."""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from ..config import DEFAULT_FAILURE_MESSAGE, Config
from ..encryption.service import EncryptionService
from .handlers import DEFAULT_HANDLERS, decrypt_object, dispatch
from .transforms import DecryptionContext, FieldOutcome, Handler, ObjectType


logger = logging.getLogger(__name__)


@dataclass
class DecryptionResult:
    """A decrypted copy of a tree and the outcome of every field touched."""

    value: Any
    outcomes: List[FieldOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[FieldOutcome]:
        return [outcome for outcome in self.outcomes if outcome.failed]

    @property
    def ok(self) -> bool:
        return not self.failures


class Decryptor:
    """
    Decrypts activity trees without touching the caller's data.

    Every call works on a deep copy of its input and returns a
    ``DecryptionResult``; a field that cannot be decrypted holds the failure
    message in the copy and shows up in ``result.failures``.
    """

    def __init__(
        self,
        encryption: EncryptionService,
        failure_message: str = DEFAULT_FAILURE_MESSAGE,
        keep_encrypted_properties: bool = False,
        handlers: Optional[Mapping[ObjectType, Handler]] = None,
    ) -> None:
        self.context = DecryptionContext(
            encryption=encryption,
            failure_message=failure_message,
            keep_encrypted_properties=keep_encrypted_properties,
            handlers=DEFAULT_HANDLERS if handlers is None else handlers,
        )

    @classmethod
    def from_config(cls, encryption: EncryptionService, config: Config) -> "Decryptor":
        return cls(
            encryption,
            failure_message=config.decryption_failure_message,
            keep_encrypted_properties=config.keep_encrypted_properties,
        )

    async def decrypt(self, node: Any, key: Optional[str] = None) -> DecryptionResult:
        """
        Decrypt any node by its ``objectType``.

        Args:
            node: Activity, conversation or any other tagged node.
            key: Key to use when the node does not carry its own.

        Returns:
            Decrypted copy and outcomes.
        """
        value = copy.deepcopy(node)
        outcomes = await decrypt_object(self.context, key, value)
        if outcomes:
            self._log_summary(outcomes)
        return DecryptionResult(value, outcomes)

    async def decrypt_as(
        self, object_type: ObjectType, node: Any, key: Optional[str] = None
    ) -> DecryptionResult:
        """Decrypt a node with the routine for ``object_type``, ignoring its tag."""
        value = copy.deepcopy(node)
        if not isinstance(value, dict):
            return DecryptionResult(value, [])
        key = value.get("encryptionKeyUrl") or key
        outcomes = await dispatch(self.context, object_type, key, value)
        if outcomes:
            self._log_summary(outcomes)
        return DecryptionResult(value, outcomes)

    async def decrypt_conversation(
        self, conversation: Any, key: Optional[str] = None
    ) -> DecryptionResult:
        return await self.decrypt_as(ObjectType.CONVERSATION, conversation, key)

    async def decrypt_many(
        self, nodes: Sequence[Any], key: Optional[str] = None
    ) -> List[DecryptionResult]:
        return list(await asyncio.gather(*(self.decrypt(node, key) for node in nodes)))

    def _log_summary(self, outcomes: List[FieldOutcome]) -> None:
        failed = sum(1 for outcome in outcomes if outcome.failed)
        if failed:
            logger.warning("%s of %s fields could not be decrypted", failed, len(outcomes))
        else:
            logger.debug("decrypted %s fields", len(outcomes))
