import asyncio
import gzip
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import typer
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from xyzhub.cli.cli.utils.common import generate_api_headers
from xyzhub.cli.cli.utils.rich_utils import rich_print_checked_statement
from xyzhub.cli.cli_logging import logger
from xyzhub.models.models.cli import CLIConfig
from xyzhub.models.models.upload import DEFAULT_RETRY_COUNT

# Statuses the hub answers on success
SUCCESS_STATUS_RANGE = range(200, 211)
RETRY_DELAY_SECONDS = 1.0
DEFAULT_PAGE_LIMIT = 5000
MAX_TOTAL_RECORDS = 500000

T = TypeVar("T")


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


def handle_api_error(error: ApiError) -> str:
    """Turn an ApiError into a message an operator can act on."""
    if error.status_code == 401:
        return (
            "Operation failed: the token is invalid or has expired, "
            "please check your configuration."
        )
    if error.status_code == 403:
        return "Operation failed: insufficient rights to perform this action."
    if error.status_code == 404:
        return f"Operation failed: resource not found ({error.message})."
    return f"Operation failed with status {error.status_code}: {error.message}"


def create_api_client(
    CLI_config: CLIConfig, transport: httpx.AsyncBaseTransport | None = None
) -> httpx.AsyncClient:
    """One client per command invocation, bound to the configured hub and token."""
    return httpx.AsyncClient(
        base_url=CLI_config.api_base_url,
        headers=generate_api_headers(CLI_config),
        timeout=CLI_config.timeout,
        transport=transport,
    )


def strip_nul(value: Any) -> Any:
    """Remove NUL characters from every string in ``value``."""
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, dict):
        return {strip_nul(k): strip_nul(v) for k, v in value.items()}
    if isinstance(value, list):
        return [strip_nul(v) for v in value]
    return value


def check_response(response: httpx.Response) -> httpx.Response:
    if response.status_code not in SUCCESS_STATUS_RANGE:
        logger.error(
            f"{response.request.method} {response.request.url} failed "
            f"with status {response.status_code}: {response.text}"
        )
        raise ApiError(response.status_code, response.text)
    return response


def json_body(response: httpx.Response, default: Any = None) -> Any:
    """Decoded JSON body, or ``default`` when the hub answered without content."""
    if not response.content:
        return default
    return response.json()


def is_server_error(error: BaseException) -> bool:
    return isinstance(error, ApiError) and error.status_code >= 500


def log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        f"Request failed with {error}, retrying "
        f"(attempt {retry_state.attempt_number + 1})"
    )


async def execute(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
    logger.debug(f"{method} {url} {kwargs.get('params') or ''}")
    response = await client.request(method, url, **kwargs)
    return check_response(response)


async def execute_gzip(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    payload: Any,
    retry_count: int = DEFAULT_RETRY_COUNT,
    compress: bool = True,
) -> httpx.Response:
    """
    Send ``payload`` as a (gzip-compressed) GeoJSON body.

    Server errors (5xx) are retried ``retry_count`` times, waiting
    ``RETRY_DELAY_SECONDS`` between attempts. Other failures raise at once.
    """
    body = json.dumps(strip_nul(payload), ensure_ascii=False).encode("utf-8")
    headers = {"Content-Type": "application/geo+json"}
    if compress:
        body = gzip.compress(body)
        headers["Content-Encoding"] = "gzip"

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(retry_count + 1),
        wait=wait_fixed(RETRY_DELAY_SECONDS),
        retry=retry_if_exception(is_server_error),
        before_sleep=log_retry,
        sleep=asyncio.sleep,
        reraise=True,
    ):
        with attempt:
            response = await client.request(method, url, content=body, headers=headers)
            return check_response(response)


async def api_upload_features(
    client: httpx.AsyncClient,
    space_id: str,
    features: list[dict[str, Any]],
    retry_count: int = DEFAULT_RETRY_COUNT,
    compress: bool = True,
) -> dict[str, Any]:
    """
    Write ``features`` to a space (PUT, features with an existing id are replaced).
    """
    response = await execute_gzip(
        client,
        "PUT",
        f"/spaces/{space_id}/features",
        {"type": "FeatureCollection", "features": features},
        retry_count=retry_count,
        compress=compress,
    )
    return json_body(response, {})


async def api_list_spaces(client: httpx.AsyncClient) -> list[dict[str, Any]]:
    response = await execute(client, "GET", "/spaces", params={"clientId": "cli"})
    return json_body(response, [])


async def api_get_features_page(
    client: httpx.AsyncClient,
    space_id: str,
    limit: int = DEFAULT_PAGE_LIMIT,
    handle: str | None = None,
    tags: str | None = None,
) -> dict[str, Any]:
    """
    Fetch one page of features.

    With a ``handle`` the space is iterated from that position, otherwise the
    first page of a search is returned.
    """
    params: dict[str, Any] = {"limit": limit, "clientId": "cli"}
    if tags:
        params["tags"] = tags
    if handle:
        params["handle"] = handle
        url = f"/spaces/{space_id}/iterate"
    else:
        url = f"/spaces/{space_id}/search"
    response = await execute(client, "GET", url, params=params)
    return json_body(response, {})


async def api_iterate_space(
    client: httpx.AsyncClient,
    space_id: str,
    limit: int = DEFAULT_PAGE_LIMIT,
    tags: str | None = None,
    handle: str | None = None,
    max_records: int = MAX_TOTAL_RECORDS,
) -> list[dict[str, Any]]:
    """
    Read every feature of a space, page by page.

    Iteration stops when a page carries no handle or no features, or once
    ``max_records`` features were read.
    """
    features: list[dict[str, Any]] = []
    while True:
        params: dict[str, Any] = {"limit": limit, "clientId": "cli"}
        if tags:
            params["tags"] = tags
        if handle:
            params["handle"] = handle
        response = await execute(client, "GET", f"/spaces/{space_id}/iterate", params=params)
        page = json_body(response, {})
        page_features = page.get("features") or []
        features.extend(page_features)
        handle = page.get("handle")
        logger.debug(f"Read {len(features)} features from space {space_id}")
        if not handle or not page_features:
            break
        if len(features) >= max_records:
            logger.warning(f"Stopped reading space {space_id} after {len(features)} features")
            break
    return features


async def api_create_space(
    client: httpx.AsyncClient, title: str, description: str
) -> dict[str, Any]:
    response = await execute(
        client, "POST", "/spaces", json={"title": title, "description": description}
    )
    return json_body(response, {})


async def api_delete_space(client: httpx.AsyncClient, space_id: str) -> None:
    await execute(client, "DELETE", f"/spaces/{space_id}")


async def api_clear_features(
    client: httpx.AsyncClient,
    space_id: str,
    tags: list[str] | None = None,
    ids: list[str] | None = None,
) -> None:
    """Delete the features matching ``tags`` and/or ``ids``; ``*`` as tag clears everything."""
    params: list[tuple[str, str]] = [("tags", tag) for tag in tags or []]
    params.extend(("id", feature_id) for feature_id in ids or [])
    await execute(client, "DELETE", f"/spaces/{space_id}/features", params=params)


async def api_check_server_accessibility(client: httpx.AsyncClient) -> bool:
    try:
        await execute(client, "GET", "/spaces", params={"clientId": "cli"})
    except (ApiError, httpx.HTTPError) as e:
        logger.error(f"Server not accessible: {e}")
        return False
    return True


async def _with_client(
    CLI_config: CLIConfig, action: Callable[[httpx.AsyncClient], Awaitable[T]]
) -> T:
    async with create_api_client(CLI_config) as client:
        return await action(client)


def run_with_client(
    CLI_config: CLIConfig, action: Callable[[httpx.AsyncClient], Awaitable[T]]
) -> T:
    """
    Run ``action`` with a fresh client, turning API and transport errors into
    an error message and exit code 1.
    """
    try:
        return asyncio.run(_with_client(CLI_config, action))
    except ApiError as e:
        rich_print_checked_statement(handle_api_error(e), "error")
        raise typer.Exit(code=1)
    except httpx.HTTPError as e:
        logger.error(f"Request to {CLI_config.api_base_url} failed: {e}")
        rich_print_checked_statement(f"Unable to reach {CLI_config.api_base_url} - {e}", "error")
        raise typer.Exit(code=1)
