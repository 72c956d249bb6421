import json
import logging
import re
import urllib.parse
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from fastapi import HTTPException
from pydantic import BaseModel

from models import (
    GraphDirectoryObject,
    TeamsAutoAttendant,
    TeamsCallQueue,
    TeamsResourceAccount,
)

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_URL = "https://graph.microsoft.com/v1.0"


class TeamsClient:
    """Read-only access to Teams voice app configuration and the directory.

    Voice app calls go to ``api_urls`` in order, failing over on 5xx and
    network errors. Directory lookups go to Microsoft Graph.
    """

    def __init__(
        self,
        token: str,
        api_urls: Optional[List[str]] = None,
        graph_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        graph_token: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.token = token
        self.client = client
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        self.graph_headers = {
            "Authorization": f"Bearer {graph_token or token}",
            "Content-Type": "application/json",
        }

        self.candidate_urls: List[str] = []
        for api_url in api_urls or []:
            clean_url = api_url.strip().rstrip("/")
            if not clean_url:
                continue
            if not clean_url.startswith("http"):
                clean_url = f"https://{clean_url}"
            if clean_url not in self.candidate_urls:
                self.candidate_urls.append(clean_url)

        if not self.candidate_urls:
            logger.warning("No voice app API URL provided to TeamsClient.")

        self.graph_url = (graph_url or DEFAULT_GRAPH_URL).strip().rstrip("/")

        self.call_stats: Dict[str, int] = {}
        self.total_calls = 0

    def log_stats(self):
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("--- API Call Statistics ---")
            logger.debug(f"Total Calls: {self.total_calls}")
            for endpoint, count in self.call_stats.items():
                logger.debug(f"  {endpoint}: {count}")
            logger.debug("---------------------------")

    def _count(self, path: str):
        stat_path = re.sub(r"/[0-9a-fA-F-]{8,}", "/{id}", path)
        self.call_stats[stat_path] = self.call_stats.get(stat_path, 0) + 1
        self.total_calls += 1

    async def _send(self, method: str, url: str, headers: Dict[str, str], **kwargs):
        # Use provided client or create a temporary one (fallback)
        if self.client:
            return await self.client.request(method, url, headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=headers, **kwargs)

    def _parse(self, response: httpx.Response, url: str, model: Optional[Type[T]]) -> Any:
        if logger.isEnabledFor(logging.DEBUG):
            try:
                logger.debug(
                    f"Response from {url}:\n{json.dumps(response.json(), indent=2)}"
                )
            except ValueError:
                logger.debug(f"Response (Text) from {url}: {response.text}")

        if response.status_code == 404:
            logger.info(f"Resource not found (404) at {url}")
            return None

        if response.status_code >= 400:
            logger.error(f"API Error {response.status_code} from {url}: {response.text}")
            raise HTTPException(
                status_code=response.status_code,
                detail=f"API Error: {response.text}",
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Failed to parse response from {url}: {e}")
            raise HTTPException(
                status_code=502, detail=f"Invalid JSON response from {url}"
            )
        # List endpoints wrap their items in a "value" envelope
        if isinstance(data, dict) and isinstance(data.get("value"), list):
            data = data["value"]
        if model and isinstance(data, list):
            return [model.model_validate(item) for item in data]
        elif model and isinstance(data, dict):
            return model.model_validate(data)
        return data

    async def _request(
        self, method: str, path: str, model: Optional[Type[T]] = None, **kwargs
    ) -> Any:
        self._count(path)
        exceptions = []

        for base_url in self.candidate_urls:
            url = f"{base_url}{path}"
            logger.debug(f"Attempting API call: {method} {url}")

            try:
                response = await self._send(method, url, self.headers, **kwargs)
            except (
                httpx.ConnectError,
                httpx.TimeoutException,
                httpx.NetworkError,
            ) as e:
                logger.warning(f"API failover triggered. {base_url} unreachable: {e}")
                exceptions.append(e)
                continue

            if response.status_code < 500:
                return self._parse(response, url, model)

            logger.warning(
                f"API failover triggered. {base_url} returned {response.status_code}"
            )

        logger.error(f"All API endpoints failed. Exceptions: {exceptions}")
        raise HTTPException(status_code=503, detail="Teams voice app API unreachable")

    async def _graph_request(self, path: str, model: Type[T]) -> Optional[T]:
        self._count(path)
        url = f"{self.graph_url}{path}"
        logger.debug(f"Attempting Graph call: GET {url}")

        try:
            response = await self._send("GET", url, self.graph_headers)
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as e:
            logger.error(f"Microsoft Graph unreachable: {e}")
            raise HTTPException(status_code=503, detail="Microsoft Graph unreachable")

        if response.status_code >= 500:
            logger.error(f"Microsoft Graph returned {response.status_code} for {url}")
            raise HTTPException(status_code=503, detail="Microsoft Graph unavailable")

        return self._parse(response, url, model)

    async def _get_paginated(
        self, path: str, model: Type[T], limit: int = 100, max_items: int = 10000
    ) -> List[T]:
        items: List[T] = []
        skip = 0
        while True:
            batch = await self._request(
                "GET", path, model=model, params={"top": limit, "skip": skip}
            )

            if not batch:
                break

            items.extend(batch)

            if len(items) > max_items:
                raise HTTPException(
                    status_code=413,
                    detail=f"Resource limit exceeded: >{max_items} items found at {path}",
                )

            if len(batch) < limit:
                break

            skip += limit

        return items

    async def get_auto_attendants(self) -> List[TeamsAutoAttendant]:
        return await self._get_paginated("/auto-attendants", model=TeamsAutoAttendant)

    async def get_auto_attendant(self, identity: str) -> Optional[TeamsAutoAttendant]:
        return await self._request(
            "GET",
            f"/auto-attendants/{urllib.parse.quote(identity)}",
            model=TeamsAutoAttendant,
        )

    async def get_call_queues(self) -> List[TeamsCallQueue]:
        return await self._get_paginated("/callqueues", model=TeamsCallQueue)

    async def get_call_queue(self, identity: str) -> Optional[TeamsCallQueue]:
        return await self._request(
            "GET", f"/callqueues/{urllib.parse.quote(identity)}", model=TeamsCallQueue
        )

    async def get_resource_accounts(self) -> List[TeamsResourceAccount]:
        return await self._get_paginated(
            "/application-instances", model=TeamsResourceAccount
        )

    async def get_user(self, object_id: str) -> Optional[GraphDirectoryObject]:
        return await self._graph_request(
            f"/users/{urllib.parse.quote(object_id)}?$select=id,displayName",
            model=GraphDirectoryObject,
        )

    async def get_group(self, object_id: str) -> Optional[GraphDirectoryObject]:
        return await self._graph_request(
            f"/groups/{urllib.parse.quote(object_id)}?$select=id,displayName",
            model=GraphDirectoryObject,
        )

    async def get_channel(
        self, team_id: str, channel_id: str
    ) -> Optional[GraphDirectoryObject]:
        return await self._graph_request(
            f"/teams/{urllib.parse.quote(team_id)}/channels/"
            f"{urllib.parse.quote(channel_id)}?$select=id,displayName",
            model=GraphDirectoryObject,
        )
