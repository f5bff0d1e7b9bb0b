"""Per object type decryption routines and the dispatch table.

Every routine takes the context, the key inherited from its parent and the
node, and returns the outcomes of everything it decrypted. Independent
fields and children are decrypted concurrently.
"""

from __future__ import annotations

import asyncio
import json
import logging
from types import MappingProxyType
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Union

from ..common.constants import JWE_SEGMENT_COUNT
from ..utils import iter_items
from .transforms import (
    DecryptionContext,
    FieldOutcome,
    Handler,
    ObjectType,
    OutcomeStatus,
    decrypt_card_item,
    decrypt_scr_prop,
    decrypt_text_prop,
)


logger = logging.getLogger(__name__)

Branch = Awaitable[Union[FieldOutcome, List[FieldOutcome]]]


async def gather_outcomes(*branches: Branch) -> List[FieldOutcome]:
    """Run branches concurrently and flatten their outcomes."""
    results = await asyncio.gather(*branches, return_exceptions=True)
    outcomes: List[FieldOutcome] = []
    for result in results:
        if isinstance(result, FieldOutcome):
            outcomes.append(result)
        elif isinstance(result, Exception):
            logger.error("decryption branch failed: %s", result)
            outcomes.append(FieldOutcome("branch", OutcomeStatus.ERROR, error=result))
        elif isinstance(result, BaseException):
            raise result
        else:
            outcomes.extend(result)
    return outcomes


async def dispatch(
    ctx: DecryptionContext, object_type: ObjectType, key: Optional[str], node: Dict[str, Any]
) -> List[FieldOutcome]:
    """Run the routine registered for ``object_type``."""
    handler = ctx.handlers.get(object_type)
    if handler is None:
        logger.debug("no decryption routine registered for %s", object_type.value)
        return []
    return await handler(ctx, key, node)


async def decrypt_object(
    ctx: DecryptionContext, key: Optional[str], node: Any
) -> List[FieldOutcome]:
    """
    Decrypt any node by its ``objectType``.

    The node's own ``encryptionKeyUrl`` takes precedence over ``key``.

    Args:
        ctx: Decryption context.
        key: Key inherited from the parent.
        node: Node to decrypt.

    Returns:
        Outcomes of the node and its descendants.
    """
    if not isinstance(node, dict):
        return []
    tag = node.get("objectType")
    if not tag:
        return []

    object_type = ObjectType.parse(tag)
    if object_type is None:
        logger.debug("skipping unknown objectType %s", tag)
        return []

    key = node.get("encryptionKeyUrl") or key
    return await dispatch(ctx, object_type, key, node)


async def decrypt_activity(
    ctx: DecryptionContext, key: Optional[str], activity: Dict[str, Any]
) -> List[FieldOutcome]:
    obj = activity.get("object")
    object_key = obj.get("encryptionKeyUrl") if isinstance(obj, dict) else None
    if not activity.get("encryptionKeyUrl") and not object_key:
        return []

    key_url = activity.get("encryptionKeyUrl") or object_key or key
    branches = []
    children = activity.get("children")
    if isinstance(children, list):
        for child in children:
            if isinstance(child, dict):
                branches.append(decrypt_object(ctx, key_url, child.get("activity")))
    branches.append(decrypt_object(ctx, key_url, obj))
    return await gather_outcomes(*branches)


async def decrypt_conversation(
    ctx: DecryptionContext, key: Optional[str], conversation: Dict[str, Any]
) -> List[FieldOutcome]:
    """
    Decrypt a conversation and everything it embeds.

    Unlike activities, a conversation without its own key is still decrypted
    with the key passed by the caller.
    """
    branches: List[Branch] = [
        decrypt_object(ctx, None, item) for item in iter_items(conversation.get("activities"))
    ]

    usable_key = conversation.get("encryptionKeyUrl") or key
    if usable_key:
        branches.append(decrypt_text_prop(ctx, "displayName", usable_key, conversation))
        branches.append(decrypt_text_prop(ctx, "content", usable_key, conversation))

    avatar_key = conversation.get("avatarEncryptionKeyUrl")
    if avatar_key:
        branches.append(decrypt_object(ctx, avatar_key, conversation.get("avatar")))

    for name in ("previous", "previousValue"):
        previous = conversation.get(name)
        if isinstance(previous, dict):
            branches.append(decrypt_text_prop(ctx, "displayName", usable_key, previous))

    return await gather_outcomes(*branches)


async def decrypt_comment(
    ctx: DecryptionContext, key: Optional[str], comment: Dict[str, Any]
) -> List[FieldOutcome]:
    branches: List[Branch] = [
        decrypt_text_prop(ctx, "displayName", key, comment),
        decrypt_text_prop(ctx, "content", key, comment),
    ]
    cards = comment.get("cards")
    if isinstance(cards, list):
        for index in range(len(cards)):
            branches.append(decrypt_card_item(ctx, index, key, cards))
    return await gather_outcomes(*branches)


async def _decrypt_content_files(
    ctx: DecryptionContext, key: Optional[str], content: Dict[str, Any]
) -> List[FieldOutcome]:
    files = content.get("files")
    if not isinstance(files, dict) or not isinstance(files.get("items"), list):
        return []

    branches: List[Branch] = [decrypt_object(ctx, key, item) for item in files["items"]]
    branches.append(decrypt_comment(ctx, key, content))
    branches.extend(decrypt_object(ctx, key, item) for item in iter_items(content.get("links")))
    return await gather_outcomes(*branches)


async def _decrypt_content_links(
    ctx: DecryptionContext, key: Optional[str], content: Dict[str, Any]
) -> List[FieldOutcome]:
    links = content.get("links")
    if not isinstance(links, dict) or not isinstance(links.get("items"), list):
        return []

    branches: List[Branch] = [decrypt_object(ctx, key, item) for item in links["items"]]
    branches.append(decrypt_comment(ctx, key, content))
    return await gather_outcomes(*branches)


async def decrypt_content(
    ctx: DecryptionContext, key: Optional[str], content: Dict[str, Any]
) -> List[FieldOutcome]:
    if content.get("contentCategory") == "links":
        return await _decrypt_content_links(ctx, key, content)
    return await _decrypt_content_files(ctx, key, content)


async def decrypt_file(
    ctx: DecryptionContext, key: Optional[str], file: Dict[str, Any]
) -> List[FieldOutcome]:
    # images carry their own key, distinct from the activity key
    file_key = file.get("encryptionKeyUrl") or key

    branches: List[Branch] = [
        decrypt_object(ctx, file_key, item) for item in iter_items(file.get("transcodedCollection"))
    ]
    branches.append(decrypt_scr_prop(ctx, "scr", file_key, file))
    branches.append(decrypt_text_prop(ctx, "displayName", file_key, file))
    branches.append(decrypt_text_prop(ctx, "content", file_key, file))
    image = file.get("image")
    if isinstance(image, dict):
        branches.append(decrypt_scr_prop(ctx, "scr", file_key, image))
    return await gather_outcomes(*branches)


async def decrypt_link(
    ctx: DecryptionContext, key: Optional[str], link: Dict[str, Any]
) -> List[FieldOutcome]:
    return await gather_outcomes(
        decrypt_scr_prop(ctx, "sslr", key, link),
        decrypt_text_prop(ctx, "displayName", key, link),
    )


async def decrypt_submit(
    ctx: DecryptionContext, key: Optional[str], submit: Dict[str, Any]
) -> List[FieldOutcome]:
    """Decrypt the JSON ``inputs`` of an Action.Submit card action."""
    if not submit.get("inputs"):
        return []

    holder = [submit["inputs"]]
    outcome = await decrypt_card_item(ctx, 0, key, holder)
    if outcome.status is OutcomeStatus.DECRYPTED:
        try:
            submit["inputs"] = json.loads(holder[0])
            return [FieldOutcome("inputs", OutcomeStatus.DECRYPTED, key)]
        except ValueError as exc:
            error: Optional[BaseException] = exc
    else:
        error = outcome.error

    logger.warning("failed to decrypt attachmentAction.inputs: %s", error)
    submit["inputs"] = ctx.failure_message
    return [FieldOutcome("inputs", OutcomeStatus.PLACEHOLDER, key, error)]


async def decrypt_reaction2(
    ctx: DecryptionContext, key: Optional[str], reaction: Dict[str, Any]
) -> List[FieldOutcome]:
    return [await decrypt_text_prop(ctx, "displayName", key, reaction)]


async def decrypt_reaction2_summary(
    ctx: DecryptionContext, key: Optional[str], summary: Dict[str, Any]
) -> List[FieldOutcome]:
    reactions = summary.get("reactions")
    if not isinstance(reactions, list):
        return []
    return await gather_outcomes(
        *(decrypt_text_prop(ctx, "displayName", key, reaction) for reaction in reactions)
    )


async def decrypt_thread(
    ctx: DecryptionContext, key: Optional[str], thread: Dict[str, Any]
) -> List[FieldOutcome]:
    children = thread.get("childActivities")
    if not isinstance(children, list):
        return []
    return await gather_outcomes(*(decrypt_object(ctx, None, child) for child in children))


async def decrypt_meeting_container(
    ctx: DecryptionContext, key: Optional[str], container: Dict[str, Any]
) -> List[FieldOutcome]:
    branches: List[Branch] = []
    if container.get("displayName"):
        usable_key = container.get("encryptionKeyUrl") or key
        branches.append(decrypt_text_prop(ctx, "displayName", usable_key, container))

    for item in iter_items(container.get("extensions")):
        data = item.get("data") if isinstance(item, dict) else None
        if isinstance(data, dict) and data.get("objectType") == "recording":
            branches.append(decrypt_text_prop(ctx, "topic", item.get("encryptionKeyUrl"), data))

    return await gather_outcomes(*branches)


async def decrypt_microapp_instance(
    ctx: DecryptionContext, key: Optional[str], instance: Dict[str, Any]
) -> List[FieldOutcome]:
    return [await decrypt_text_prop(ctx, "model", key, instance)]


async def decrypt_event(
    ctx: DecryptionContext, key: Optional[str], event: Dict[str, Any]
) -> List[FieldOutcome]:
    branches: List[Branch] = [decrypt_text_prop(ctx, "displayName", key, event)]
    location = event.get("location")
    if isinstance(location, str) and len(location.split(".")) == JWE_SEGMENT_COUNT:
        branches.append(decrypt_text_prop(ctx, "location", key, event))
    return await gather_outcomes(*branches)


async def decrypt_image_uri(
    ctx: DecryptionContext, key: Optional[str], image_uri: Dict[str, Any]
) -> List[FieldOutcome]:
    return [await decrypt_text_prop(ctx, "location", key, image_uri)]


async def decrypt_transcoded_content(
    ctx: DecryptionContext, key: Optional[str], content: Dict[str, Any]
) -> List[FieldOutcome]:
    return await gather_outcomes(
        *(
            dispatch(ctx, ObjectType.FILE, key, item)
            for item in iter_items(content.get("files"))
            if isinstance(item, dict)
        )
    )


DEFAULT_HANDLERS: Mapping[ObjectType, Handler] = MappingProxyType({
    ObjectType.ACTIVITY: decrypt_activity,
    ObjectType.COMMENT: decrypt_comment,
    ObjectType.CONTENT: decrypt_content,
    ObjectType.CONVERSATION: decrypt_conversation,
    ObjectType.EVENT: decrypt_event,
    ObjectType.FILE: decrypt_file,
    ObjectType.IMAGE_URI: decrypt_image_uri,
    ObjectType.LINK: decrypt_link,
    ObjectType.MEETING_CONTAINER: decrypt_meeting_container,
    ObjectType.MICROAPP_INSTANCE: decrypt_microapp_instance,
    ObjectType.REACTION2: decrypt_reaction2,
    ObjectType.REACTION2_SELF_SUMMARY: decrypt_reaction2_summary,
    ObjectType.REACTION2_SUMMARY: decrypt_reaction2_summary,
    ObjectType.SUBMIT: decrypt_submit,
    ObjectType.THREAD: decrypt_thread,
    ObjectType.TRANSCODED_CONTENT: decrypt_transcoded_content,
})
