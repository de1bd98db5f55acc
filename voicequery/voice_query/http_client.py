"""Client for the remote text-to-SQL service."""

import asyncio
import json
import logging

import aiohttp

from ..errors import RemoteServiceError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 3.0


def build_request_body(ddl: str, question: str) -> dict:
    return {"ddl": ddl, "question": question}


def parse_sql_response(body: str) -> str:
    """Extract the ``sql`` string field from a JSON response body."""
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None

    sql = payload.get("sql") if isinstance(payload, dict) else None
    if not isinstance(sql, str) or not sql.strip():
        raise RemoteServiceError(f"Text-to-SQL proxy error: No SQL in response. Response: {body}",
                                 body=body)
    return sql


class TextToSqlClient:
    """Posts {"ddl", "question"} to the service and returns the generated SQL."""

    def __init__(self, url: str, timeout: float = 15):
        self.url = url
        self.timeout = timeout
        logger.debug(f"TextToSqlClient initialized for {url} (timeout {timeout}s)")

    async def generate_sql(self, ddl: str, question: str) -> str:
        """Send one request; every failure surfaces as RemoteServiceError.

        Raises:
            RemoteServiceError: on connection failure, timeout, non-2xx status
                or a response without an ``sql`` field
        """
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=self.timeout, sock_connect=CONNECT_TIMEOUT)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, headers=headers,
                                        json=build_request_body(ddl, question)) as response:
                    body = await response.text()
                    status = response.status
        except asyncio.TimeoutError as e:
            raise RemoteServiceError(f"Request timed out after {self.timeout:g} seconds") from e
        except aiohttp.ClientConnectorError as e:
            raise RemoteServiceError(f"Cannot connect to text-to-sql proxy at {self.url}") from e
        except aiohttp.ClientError as e:
            raise RemoteServiceError(f"HTTP request failed: {e}") from e

        logger.debug(f"Text-to-SQL response: HTTP {status}, {len(body)} bytes")
        if not 200 <= status < 300:
            message = f"Text-to-SQL proxy error: HTTP {status}"
            if body:
                message += f" - {body}"
            raise RemoteServiceError(message, body=body, status=status)

        try:
            return parse_sql_response(body)
        except RemoteServiceError as e:
            e.status = status
            raise

    def generate_sql_sync(self, ddl: str, question: str) -> str:
        """Blocking variant for worker threads that have no event loop."""
        return asyncio.run(self.generate_sql(ddl, question))
