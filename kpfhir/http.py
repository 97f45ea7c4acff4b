from __future__ import annotations

import logging

import httpx

from .constants import ERROR_BODY_LOG_LIMIT, LOGGER


def _redacted_url(url: httpx.URL) -> str:
    # Query strings carry patient ids and authorization codes.
    return str(url.copy_with(query=None))


def friendly_error_message(status_code: int | None) -> str:
    if status_code == 401:
        return "Authentication failed. Your Kaiser Permanente session may have expired."
    if status_code == 403:
        return "You don't have permission to view this record."
    if status_code == 404:
        return "The requested record was not found."
    if status_code == 429:
        return "Too many requests. Please wait a moment and try again."
    if status_code is not None and status_code >= 500:
        return "Kaiser Permanente API is experiencing issues. Please try again later."
    if status_code is None:
        return "Could not reach Kaiser Permanente API."
    return f"Kaiser Permanente API request failed with status {status_code}."


def build_log_hooks(logger: logging.Logger | None = None) -> dict[str, list]:
    log = logger or LOGGER

    async def log_request(request: httpx.Request) -> None:
        log.info("KP API request %s %s", request.method, _redacted_url(request.url))

    async def log_response(response: httpx.Response) -> None:
        log.info(
            "KP API response %s %s -> %s",
            response.request.method,
            _redacted_url(response.request.url),
            response.status_code,
        )
        if response.status_code >= 400:
            body = await response.aread()
            text = body.decode("utf-8", errors="replace")
            if len(text) > ERROR_BODY_LOG_LIMIT:
                text = text[:ERROR_BODY_LOG_LIMIT] + "...<truncated>"
            log.warning("KP API error body: %s", text)

    return {"request": [log_request], "response": [log_response]}


def build_http_client(
    *,
    timeout: float = 30.0,
    debug_enabled: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    event_hooks = build_log_hooks() if debug_enabled else {}
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        event_hooks=event_hooks,
    )
