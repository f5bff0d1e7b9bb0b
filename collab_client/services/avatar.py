"""Avatar url lookups, batched into one request per flush window."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from ..common.types import AvatarUrl
from ..config import Config
from ..core.batcher import Batcher
from ..core.scheduler import Scheduler
from ..http_client import HttpClient, HttpResponse
from ..utils import AvatarError, BatchError, RequestError, ServiceError, uniq


logger = logging.getLogger(__name__)


def _lookup_size(entry: Any, size: int) -> Optional[Dict[str, Any]]:
    if not isinstance(entry, dict):
        return None
    result = entry.get(str(size))
    if result is None:
        result = entry.get(size)
    return result if isinstance(result, dict) else None


class AvatarUrlBatcher(Batcher):
    """Batches ``{uuid, size}`` lookups into ``POST avatar:/profiles/urls``."""

    namespace = "Avatar"

    def __init__(self, http: HttpClient, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.http = http

    def fingerprint_request(self, item: Dict[str, Any]) -> str:
        return f"{item['uuid']}-{item['size']}"

    def fingerprint_response(self, item: Dict[str, Any]) -> str:
        return f"{item['uuid']}-{item['size']}"

    def prepare_request(self, queue: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        groups: Dict[str, List[int]] = {}
        for item in queue:
            groups.setdefault(item["uuid"], []).append(item["size"])
        return [{"uuid": uuid, "sizes": uniq(sizes)} for uuid, sizes in groups.items()]

    async def submit_http_request(self, payload: List[Dict[str, Any]]) -> HttpResponse:
        return await self.http.request(
            "POST", service="avatar", resource="profiles/urls", body=payload
        )

    async def handle_http_success(
        self, response: HttpResponse, payload: List[Dict[str, Any]]
    ) -> None:
        body = response.body if isinstance(response.body, dict) else {}
        items = []
        for request in payload:
            entry = body.get(request["uuid"])
            for size in request["sizes"]:
                items.append({
                    "uuid": request["uuid"],
                    "size": size,
                    "response": _lookup_size(entry, size),
                })
        await self.accept_items(items)

    async def handle_http_error(
        self, error: BaseException, payload: List[Dict[str, Any]]
    ) -> None:
        if not isinstance(error, Exception):
            error = BatchError(str(error))
        elif isinstance(error, RequestError) and not str(error) and error.body:
            error = BatchError(str(error.body))

        for request in payload:
            for size in request["sizes"]:
                self.reject_request({"uuid": request["uuid"], "size": size}, error)

    def did_item_fail(self, item: Dict[str, Any]) -> bool:
        response = item.get("response")
        if not response:
            return True
        returned = response.get("size")
        if returned is not None and returned != item["size"]:
            logger.warning('Avatar: substituted size "%s" for "%s"', returned, item["size"])
        return False

    def handle_item_failure(self, item: Dict[str, Any]) -> None:
        self.reject_request(item, AvatarError("Failed to retrieve avatar"))

    def handle_item_success(self, item: Dict[str, Any]) -> None:
        response = item["response"]
        returned = response.get("size")
        self.resolve_request(item, AvatarUrl(
            uuid=item["uuid"],
            size=returned if returned is not None else item["size"],
            url=response.get("url"),
            has_default_avatar=bool(response.get("defaultAvatar")),
            requested_size=item["size"],
        ))


UserRef = Union[str, Dict[str, Any]]


class Avatar:
    """Avatar service with a per-user, per-size result cache."""

    def __init__(
        self,
        http: HttpClient,
        config: Config,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.config = config
        self.batcher = AvatarUrlBatcher(
            http,
            wait=config.batcher_wait,
            max_calls=config.batcher_max_calls,
            scheduler=scheduler,
        )
        self._cache: Dict[str, Dict[int, AvatarUrl]] = {}

    @staticmethod
    def _user_id(user: UserRef) -> str:
        uuid = user.get("id") if isinstance(user, dict) else user
        if not uuid:
            raise ServiceError("`user` is required.")
        return str(uuid)

    def _validate_size(self, size: Optional[int]) -> int:
        size = self.config.avatar_default_size if size is None else size
        if size not in self.config.avatar_sizes:
            raise ServiceError(
                f"`size` must be one of {', '.join(map(str, self.config.avatar_sizes))}"
            )
        return size

    async def retrieve_avatar_url(self, user: UserRef, size: Optional[int] = None) -> AvatarUrl:
        """
        Fetch the avatar url of a user.

        Args:
            user: User id or a mapping with an ``id``.
            size: Avatar size in pixels, defaults to ``avatar_default_size``.

        Returns:
            The avatar url.

        Raises:
            AvatarError: If the service has no avatar for the user.
            ServiceError: If the size is not supported.
        """
        uuid = self._user_id(user)
        size = self._validate_size(size)

        cached = self._cache.get(uuid, {}).get(size)
        if cached is not None:
            return cached

        result = await self.batcher.request({"uuid": uuid, "size": size})
        self._cache.setdefault(uuid, {})[size] = result
        return result

    async def retrieve_avatar_urls(
        self, users: Sequence[UserRef], size: Optional[int] = None
    ) -> List[Union[AvatarUrl, BaseException]]:
        """Fetch several avatar urls through the same batch; failures are returned in place."""
        return list(await asyncio.gather(
            *(self.retrieve_avatar_url(user, size) for user in users),
            return_exceptions=True,
        ))

    def forget(self, user: UserRef) -> None:
        """Drop every cached size for a user."""
        self._cache.pop(self._user_id(user), None)
