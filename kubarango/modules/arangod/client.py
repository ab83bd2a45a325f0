import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from kubarango.config.provider import ArangodConfig
from kubarango.config.timeouts import GlobalTimeouts
from kubarango.modules.k8s.names import create_database_client_service_dns_name
from kubarango.modules.storage.errors import OperatorError

logger = logging.getLogger("kubarango.arangod")

NUMBER_OF_SERVERS_PATH = "/_admin/cluster/numberOfServers"


class ArangodError(OperatorError):
    """The database's administrative endpoint failed or was unreachable."""


class NumberOfServers(BaseModel):
    """Server counts as seen by the cluster itself; None means not managed."""

    model_config = ConfigDict(populate_by_name=True)

    coordinators: Optional[int] = Field(None, alias="numberOfCoordinators")
    dbservers: Optional[int] = Field(None, alias="numberOfDBServers")

    def get_coordinators(self) -> int:
        return self.coordinators or 0

    def get_dbservers(self) -> int:
        return self.dbservers or 0


class ArangodClient:
    """Client for the cluster administration API of one deployment."""

    def __init__(
        self,
        base_url: str,
        config: Optional[ArangodConfig] = None,
        timeouts: Optional[GlobalTimeouts] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Endpoint of the database, e.g. https://db.ns.svc:8529
            config: Credentials and TLS settings
            timeouts: Deadline policy for each call
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url
        self.config = config
        self.timeouts = timeouts or GlobalTimeouts()

        headers: Dict[str, str] = {}
        auth = None
        verify = True
        if config is not None:
            verify = config.verify_tls
            if config.jwt_token:
                headers["Authorization"] = f"bearer {config.jwt_token}"
            elif config.has_basic_auth:
                auth = httpx.BasicAuth(config.username, config.password or "")

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            auth=auth,
            verify=verify,
            transport=transport,
        )

    @classmethod
    def for_deployment(
        cls,
        deployment: str,
        namespace: str,
        config: ArangodConfig,
        timeouts: Optional[GlobalTimeouts] = None,
        domain: Optional[str] = None,
    ) -> "ArangodClient":
        host = create_database_client_service_dns_name(deployment, namespace, domain)
        return cls(f"{config.scheme}://{host}:{config.port}", config, timeouts)

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = await self.timeouts.arangod().run(
                self._client.request(method, path, json=json)
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ArangodError(
                f"{method} {path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ArangodError(f"{method} {path} failed: {e}") from e
        return response.json() if response.content else {}

    async def get_number_of_servers(self) -> NumberOfServers:
        data = await self._request("GET", NUMBER_OF_SERVERS_PATH)
        return NumberOfServers.model_validate(data)

    async def set_number_of_servers(
        self, coordinators: Optional[int], dbservers: Optional[int]
    ) -> None:
        """Push desired counts; groups passed as None are left to the cluster."""
        body: Dict[str, Any] = {}
        if coordinators is not None:
            body["numberOfCoordinators"] = coordinators
        if dbservers is not None:
            body["numberOfDBServers"] = dbservers
        await self._request("PUT", NUMBER_OF_SERVERS_PATH, json=body)
        logger.debug(f"Set number of servers at {self.base_url}: {body}")

    async def aclose(self) -> None:
        await self._client.aclose()
