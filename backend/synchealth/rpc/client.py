from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

import httpx

from synchealth.core.errors import (
    ConnectionFailedError,
    HubError,
    RpcTimeoutError,
    SubmissionFailedError,
    UnavailableError,
)
from synchealth.schemas.hub import (
    ContactInfo,
    ContactInfoResponse,
    HubInfoResponse,
    Message,
    MessagesResponse,
    SyncIdsPayload,
    TrieNodeMetadataOut,
)
from synchealth.sync.types import TrieNodeMetadata

logger = logging.getLogger(__name__)

RPC_TIMEOUT_SECONDS = 2.0

TransportFactory = Callable[[str, bool], httpx.AsyncBaseTransport]


class HubRpcClient:
    """HTTP client for one hub; every call carries the same deadline."""

    def __init__(
        self,
        address: str,
        secure: bool = True,
        timeout_sec: float = RPC_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.address = address
        self.secure = secure
        self._timeout = timeout_sec
        scheme = "https" if secure else "http"
        self._client = httpx.AsyncClient(
            base_url=f"{scheme}://{address}", timeout=timeout_sec, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HubRpcClient":
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def wait_for_ready(self) -> HubInfoResponse:
        """Probe the hub; raises ConnectionFailedError when it is not ready."""

        try:
            data = await self._request_json("GET", "/v1/info")
            return HubInfoResponse.model_validate(data)
        except HubError as exc:
            raise ConnectionFailedError(
                f"Hub {self.address} not ready: {exc.message}", status_code=exc.status_code
            ) from exc
        except ValueError as exc:
            raise ConnectionFailedError(f"Hub {self.address} returned an invalid info payload.") from exc

    async def get_sync_metadata_by_prefix(self, prefix: bytes) -> TrieNodeMetadata:
        data = await self._request_json(
            "GET", "/v1/syncMetadataByPrefix", params={"prefix": prefix.hex()}
        )
        return self._parse(TrieNodeMetadataOut, data).to_metadata()

    async def get_all_sync_ids_by_prefix(self, prefix: bytes) -> list[bytes]:
        data = await self._request_json("GET", "/v1/syncIdsByPrefix", params={"prefix": prefix.hex()})
        return self._parse(SyncIdsPayload, data).to_bytes()

    async def get_all_messages_by_sync_ids(self, sync_ids: list[bytes]) -> list[Message]:
        payload = SyncIdsPayload.from_bytes(sync_ids).model_dump(mode="json")
        data = await self._request_json("POST", "/v1/messagesBySyncIds", json=payload)
        return self._parse(MessagesResponse, data).messages

    async def submit_message(self, message: Message) -> Message:
        try:
            data = await self._request_json(
                "POST", "/v1/submitMessage", json=message.model_dump(mode="json")
            )
        except HubError as exc:
            if exc.status_code == 400:
                raise SubmissionFailedError(exc.message, status_code=400) from exc
            raise
        return self._parse(Message, data)

    async def get_current_peers(self) -> list[ContactInfo]:
        data = await self._request_json("GET", "/v1/currentPeers")
        return self._parse(ContactInfoResponse, data).contacts

    async def _request_json(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        response = await self._request(method, path, params=params, json=json)
        try:
            return response.json()
        except ValueError as exc:
            raise HubError("Invalid JSON from hub.", code="HUB_PARSE_ERROR") from exc

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        try:
            response = await asyncio.wait_for(
                self._client.request(method, path, params=params, json=json),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise RpcTimeoutError(f"Hub {self.address} {path} timed out.") from exc
        except httpx.RequestError as exc:
            raise UnavailableError(f"Hub {self.address} connection failed: {exc}") from exc
        if response.status_code >= 400:
            raise _status_error(response)
        return response

    @staticmethod
    def _parse(model: Any, data: Any) -> Any:
        try:
            return model.model_validate(data)
        except ValueError as exc:
            raise HubError("Hub returned an invalid payload.", code="HUB_PARSE_ERROR") from exc


class HubConnector:
    """Open hub clients, preferring TLS and falling back to plain HTTP."""

    def __init__(
        self,
        timeout_sec: float = RPC_TIMEOUT_SECONDS,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self._timeout = timeout_sec
        self._transport_factory = transport_factory

    async def connect(self, address: str, secure: bool) -> HubRpcClient:
        """Return a ready client or raise ConnectionFailedError."""

        try:
            transport = self._transport_factory(address, secure) if self._transport_factory else None
            client = HubRpcClient(address, secure=secure, timeout_sec=self._timeout, transport=transport)
        except Exception as exc:  # noqa: BLE001
            raise ConnectionFailedError(f"Unable to create client for {address}: {exc}") from exc
        try:
            await client.wait_for_ready()
        except ConnectionFailedError:
            await client.aclose()
            raise
        except Exception as exc:  # noqa: BLE001
            await client.aclose()
            raise ConnectionFailedError(f"Readiness probe for {address} raised: {exc}") from exc
        return client

    async def connect_with_fallback(self, address: str) -> HubRpcClient:
        """Try a secure connection first, then an insecure one."""

        try:
            return await self.connect(address, secure=True)
        except ConnectionFailedError as exc:
            logger.info("Secure connection to %s failed (%s), trying insecure", address, exc.message)
        try:
            return await self.connect(address, secure=False)
        except ConnectionFailedError as exc:
            raise ConnectionFailedError(f"Neither secure nor insecure connection to {address} became ready.") from exc


def _status_error(response: httpx.Response) -> HubError:
    status = response.status_code
    message = f"Hub returned {status}: {_extract_response_message(response)}"
    if status == 404:
        return UnavailableError(message, status_code=status)
    if status in {408, 504}:
        return RpcTimeoutError(message, status_code=status)
    return HubError(message, code="HUB_BAD_STATUS", status_code=status)


def _extract_response_message(response: httpx.Response) -> str:
    """Extract a concise error message from hub JSON/text payloads."""

    try:
        payload: Any = response.json()
    except ValueError:
        return (response.text or "Unknown error from hub.").strip()

    if isinstance(payload, dict):
        detail = payload.get("detail")
        if isinstance(detail, dict):
            message = detail.get("message") or detail.get("code")
            if isinstance(message, str) and message.strip():
                return message.strip()
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return (response.text or "Unknown error from hub.").strip()
