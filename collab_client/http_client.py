"""HTTP transport for the collaboration client."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import aiohttp

from .config import Config
from .utils import RequestError


logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({429, 502, 503, 504})


@dataclass
class HttpResponse:
    """A decoded HTTP response together with the options that produced it."""

    status_code: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    links: Dict[str, str] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)


def _encode_params(qs: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for name, value in (qs or {}).items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[name] = "true" if value else "false"
        else:
            params[name] = str(value)
    return params


async def _read_body(resp: aiohttp.ClientResponse) -> Any:
    if resp.status == 204:
        return None
    if resp.content_type == "application/json":
        return await resp.json()
    text = await resp.text()
    return text or None


class HttpClient:
    """
    Thin aiohttp wrapper that resolves service urls and retries transient failures.

    A request addresses either an absolute ``uri`` or a ``service`` plus a
    ``resource`` path; the service base url comes from ``Config.services``.
    """

    def __init__(
        self,
        config: Config,
        session: Optional[aiohttp.ClientSession] = None,
        retry_delay: float = 1.0,
    ) -> None:
        self.config = config
        self.retry_delay = retry_delay
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.http_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    def resolve_uri(
        self,
        uri: Optional[str] = None,
        service: Optional[str] = None,
        resource: Optional[str] = None,
    ) -> str:
        """
        Build the absolute url for a request.

        Args:
            uri: Absolute url, used as is when given.
            service: Service name from the catalog.
            resource: Path below the service base url.

        Returns:
            Absolute url.
        """
        if uri:
            return uri
        if not service:
            raise RequestError("Either `uri` or `service` is required.")
        base = self.config.service_url(service)
        if not resource:
            return base
        return f"{base}/{resource.lstrip('/')}"

    def _headers(self, extra: Optional[Mapping[str, str]]) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.config.access_token}"}
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str = "GET",
        uri: Optional[str] = None,
        service: Optional[str] = None,
        resource: Optional[str] = None,
        qs: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        """
        Send a JSON request.

        Args:
            method: HTTP method.
            uri: Absolute url.
            service: Service name, used with ``resource`` when ``uri`` is absent.
            resource: Resource path below the service url.
            qs: Query string parameters.
            body: JSON body.
            headers: Extra headers.

        Returns:
            Decoded response.

        Raises:
            RequestError: If the request fails after retries.
        """
        url = self.resolve_uri(uri, service, resource)
        options = {"method": method, "uri": url, "qs": dict(qs or {}), "body": body}
        retries = max(1, self.config.http_retries)
        delay = self.retry_delay

        for attempt in range(1, retries + 1):
            try:
                async with self.session.request(
                    method,
                    url,
                    params=_encode_params(qs),
                    json=body,
                    headers=self._headers(headers),
                ) as resp:
                    payload = await _read_body(resp)
                    if resp.status in RETRY_STATUSES and attempt < retries:
                        logger.warning(
                            "%s %s returned %s (attempt %s), retrying",
                            method, url, resp.status, attempt,
                        )
                        await asyncio.sleep(delay)
                        delay *= 2
                        continue
                    if resp.status >= 400:
                        raise RequestError(
                            f"{method} {url} failed with status {resp.status}",
                            status_code=resp.status,
                            body=payload,
                            options=options,
                        )
                    return HttpResponse(
                        status_code=resp.status,
                        body=payload,
                        headers=dict(resp.headers),
                        links={
                            str(rel): str(link.get("url"))
                            for rel, link in resp.links.items()
                            if link.get("url") is not None
                        },
                        options=options,
                    )
            except aiohttp.ClientError as exc:
                logger.warning("%s %s attempt %s failed: %s", method, url, attempt, exc)
                if attempt >= retries:
                    raise RequestError(
                        f"{method} {url} failed: {exc}", options=options
                    ) from exc
                await asyncio.sleep(delay)
                delay *= 2
        raise RequestError(f"{method} {url} failed.", options=options)

    async def upload(
        self,
        uri: str,
        data: bytes,
        qs: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Run the three phase upload (initialize, upload, finalize).

        Args:
            uri: Upload session endpoint.
            data: Bytes to upload.
            qs: Query string for the initialize call.

        Returns:
            Body of the finalize response.
        """
        file_size = len(data)
        init = await self.request("POST", uri=uri, qs=qs, body={"fileSize": file_size})
        upload_session = init.body or {}
        upload_url = upload_session.get("uploadUrl")
        finish_url = upload_session.get("finishUploadUrl")
        if not upload_url or not finish_url:
            raise RequestError("Upload session is missing upload urls.", body=upload_session)

        try:
            async with self.session.put(upload_url, data=data) as resp:
                if resp.status >= 400:
                    raise RequestError(
                        f"PUT {upload_url} failed with status {resp.status}",
                        status_code=resp.status,
                    )
        except aiohttp.ClientError as exc:
            raise RequestError(f"PUT {upload_url} failed: {exc}") from exc

        finished = await self.request("POST", uri=finish_url, body={"fileSize": file_size})
        return finished.body
