"""Upstash backend: Redis commands over the Upstash REST API via httpx.

Each command is POSTed to the database URL as a JSON array, e.g.
`["ZRANGE", "user:v2:chat:u1", "0", "-1", "REV"]`, and answered with
`{"result": ...}` or `{"error": "..."}`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from chatsync.errors import SourceError
from chatsync.sources.base import SessionSource, SourceInfo

logger = logging.getLogger(__name__)


class UpstashRestSource(SessionSource):
    """Session store backed by Upstash Redis over HTTPS.

    Upstash does not offer wildcard listing, so enumeration walks the key
    space with `SCAN` until the cursor wraps back to 0. Scan order is not
    stable between passes.
    """

    # Upper bound on SCAN round trips in one enumeration
    MAX_SCAN_ITERATIONS = 100_000

    def __init__(
        self,
        url: str,
        token: str,
        timeout: float = 30.0,
        scan_batch_size: int = 1000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize REST source.

        Args:
            url: Upstash REST endpoint
            token: Upstash REST bearer token
            timeout: Seconds allowed for a single store call
            scan_batch_size: COUNT hint for each SCAN call
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(timeout=timeout)
        self.url = url.rstrip("/")
        self._token = token
        self.scan_batch_size = scan_batch_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def get_source_info(self) -> SourceInfo:
        return SourceInfo(
            name="upstash",
            description="Upstash Redis (REST protocol)",
            protocol="rest",
            native_pattern_listing=False,
        )

    async def connect(self) -> None:
        logger.info("Connecting to Upstash Redis")
        self._client = httpx.AsyncClient(
            base_url=self.url,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self.timeout,
            transport=self._transport,
        )
        await self._connect_call(self._command("PING"))
        logger.info("Connected to Upstash Redis")

    async def _command(self, *args: Any) -> Any:
        if self._client is None:
            raise SourceError("Upstash source not connected")

        response = await self._client.post("/", json=[str(a) for a in args])
        try:
            payload = response.json()
        except ValueError:
            response.raise_for_status()
            raise SourceError(f"Upstash returned a non-JSON response for {args[0]}", str(args[0]))

        if isinstance(payload, dict) and payload.get("error"):
            raise SourceError(f"Upstash {args[0]} error: {payload['error']}", str(args[0]))
        response.raise_for_status()
        return payload.get("result") if isinstance(payload, dict) else None

    async def list_index_keys(self, pattern: str) -> list[str]:
        keys: list[str] = []
        seen: set[str] = set()
        cursor = "0"

        for _ in range(self.MAX_SCAN_ITERATIONS):
            result = await self._call(
                "scan",
                self._command("SCAN", cursor, "MATCH", pattern, "COUNT", self.scan_batch_size),
            )
            if (
                not isinstance(result, list)
                or len(result) != 2
                or not isinstance(result[1] or [], list)
            ):
                raise SourceError(f"Unexpected SCAN reply: {result!r}", "scan")

            cursor = str(result[0])
            for key in result[1] or []:
                # SCAN may return a key more than once
                if key not in seen:
                    seen.add(key)
                    keys.append(key)

            if cursor == "0":
                return keys

        logger.warning(
            f"SCAN iteration limit reached ({self.MAX_SCAN_ITERATIONS}), "
            f"returning {len(keys)} keys found so far"
        )
        return keys

    async def read_ordered_ids(self, index_key: str) -> list[str]:
        result = await self._call("zrange", self._command("ZRANGE", index_key, 0, -1, "REV"))
        return [str(member) for member in result or []]

    async def read_record(self, session_key: str) -> dict[str, str]:
        result = await self._call("hgetall", self._command("HGETALL", session_key))
        if not result:
            return {}
        if isinstance(result, dict):
            return dict(result)
        # RESP2-style flat [field, value, field, value, ...] reply
        return dict(zip(result[::2], result[1::2]))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Upstash Redis client closed")
