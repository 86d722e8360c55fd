from __future__ import annotations

import json
import urllib.parse
from typing import Any

import aiohttp

DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_BYTES = 5_000_000


class HttpClientError(Exception):
    pass


def _check_scheme(url: str) -> None:
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise HttpClientError("Only http/https are supported")


async def http_get(
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> dict[str, Any]:
    _check_scheme(url)
    try:
        async with aiohttp.ClientSession(headers={"User-Agent": "tabpilot/0.1"}) as session:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
                chunks: list[bytes] = []
                size = 0
                async for chunk in resp.content.iter_chunked(64 * 1024):
                    chunks.append(chunk)
                    size += len(chunk)
                    if size > max_bytes:
                        break
                body = b"".join(chunks)
                truncated = len(body) > max_bytes
                if truncated:
                    body = body[:max_bytes]
                return {
                    "status": resp.status,
                    "url": str(resp.url),
                    "headers": dict(resp.headers),
                    "body": body.decode(resp.charset or "utf-8", errors="replace"),
                    "truncated": truncated,
                }
    except (TimeoutError, aiohttp.ClientError) as exc:
        raise HttpClientError(str(exc) or type(exc).__name__) from exc


async def http_get_json(url: str, *, timeout: float = DEFAULT_TIMEOUT) -> Any:
    """GET ``url`` and decode a JSON body; non-2xx answers raise ``HttpClientError``."""
    resp = await http_get(url, timeout=timeout)
    if not 200 <= int(resp["status"]) < 300:
        raise HttpClientError(f"HTTP {resp['status']} from {url}")
    try:
        return json.loads(resp["body"])
    except ValueError as exc:
        raise HttpClientError(f"Invalid JSON from {url}") from exc
