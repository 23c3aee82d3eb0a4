"""
# Database Admin Client

HTTP client for the remote database provisioning endpoint exposed by the cluster's
primary node (its studio URL) or by `DATABASE_ADMIN_URL`.

## Endpoints

| Operation | Request | Success |
|-----------|---------|---------|
| `create_database` | `POST /admin/databases` `{"DatabaseName", "Settings"}` | 2xx, or 409 (already exists) |
| `list_databases` | `GET /databases` | 2xx with `{"Databases": [{"Name": ...}]}` |
| `delete_database` | `DELETE /admin/databases` `{"DatabaseNames", "HardDelete"}` | 2xx, or 404 (already gone) |

Transport failures and any other status raise `ProvisioningError`. Nothing is retried.
"""

from typing import Any, Dict, List, Optional

import httpx

from tenant_provisioning.database.exceptions import ProvisioningError
from tenant_provisioning.managers.logging_manager import get_logger

logger = get_logger(prefix="[AdminClient]")


class DatabaseAdminClient:
    """
    Async client for the remote provisioning endpoint.

    Args:
        base_url: Root URL of the admin endpoint (e.g. `https://10.0.0.1:8080`).
        timeout: Request timeout in seconds.
        encrypted: Request encrypted storage for new databases.
        transport: Optional httpx transport (tests inject `httpx.MockTransport`).
        verify: TLS verification flag or CA bundle path.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        encrypted: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        verify: Any = True,
    ):
        self.base_url = base_url.rstrip("/")
        self.encrypted = encrypted
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport, verify=verify)

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            return await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {self.base_url}{path} failed: {e}")
            raise ProvisioningError(
                f"Admin endpoint request failed: {e}", details={"method": method, "path": path}
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str, database_name: Optional[str] = None) -> None:
        if response.is_success:
            return
        logger.error(f"{action} failed with HTTP {response.status_code}: {response.text[:200]}")
        raise ProvisioningError(
            f"{action} failed with HTTP {response.status_code}",
            details={"status_code": response.status_code, "database": database_name, "body": response.text[:500]},
        )

    async def create_database(self, name: str) -> None:
        """Create a database; an existing database counts as success."""
        payload = {
            "DatabaseName": name,
            "Settings": {
                "DataDirectory": f"Databases/{name}",
                "Encrypted": self.encrypted,
            },
        }
        response = await self._request("POST", "/admin/databases", json=payload)
        if response.status_code == httpx.codes.CONFLICT:
            logger.info(f"Database {name} already exists")
            return
        self._raise_for_status(response, f"Create database {name}", name)
        logger.info(f"Created database {name}")

    async def list_databases(self) -> List[str]:
        response = await self._request("GET", "/databases")
        self._raise_for_status(response, "List databases")
        body = response.json()
        return [entry["Name"] for entry in body.get("Databases", [])]

    async def delete_database(self, name: str, hard_delete: bool = True) -> None:
        """Delete a database; a missing database counts as success."""
        payload = {"DatabaseNames": [name], "HardDelete": hard_delete}
        response = await self._request("DELETE", "/admin/databases", json=payload)
        if response.status_code == httpx.codes.NOT_FOUND:
            logger.info(f"Database {name} already deleted")
            return
        self._raise_for_status(response, f"Delete database {name}", name)
        logger.info(f"Deleted database {name}")

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DatabaseAdminClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
