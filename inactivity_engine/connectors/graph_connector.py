"""
Microsoft Graph Directory Connector for the Inactivity Engine.

Provides account listing with sign-in activity, group lookup and membership
management, account disable/removal, and subscribed SKU listing against
Microsoft Entra ID through the Graph REST API.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

import requests
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import ClientSecretCredential, DefaultAzureCredential
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..models import (
    Account,
    AccountFilter,
    DirectoryContext,
    EnabledState,
    Group,
    LicenseSku,
)
from .base_connector import (
    BaseDirectoryConnector,
    ConnectorResult,
    DirectoryConnectionError,
    DirectoryError,
)

logger = logging.getLogger(__name__)

GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

USER_SELECT_FIELDS = [
    "id",
    "userPrincipalName",
    "displayName",
    "mail",
    "userType",
    "accountEnabled",
    "createdDateTime",
    "department",
    "assignedLicenses",
    "signInActivity",
]


def build_odata_filter(account_filter: AccountFilter) -> str:
    """
    Translate an AccountFilter into a Graph $filter expression.

    Args:
        account_filter: Structural account filter

    Returns:
        OData filter string
    """
    clauses = [f"userType eq '{account_filter.kind.value}'"]
    if account_filter.enabled_state == EnabledState.ENABLED:
        clauses.append("accountEnabled eq true")
    elif account_filter.enabled_state == EnabledState.DISABLED:
        clauses.append("accountEnabled eq false")
    return " and ".join(clauses)


def _quote(value: str) -> str:
    return value.replace("'", "''")


class GraphDirectoryConnector(BaseDirectoryConnector):
    """Microsoft Entra ID connector backed by the Graph REST API."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, credential: Optional[Any] = None,
                 session: Optional[requests.Session] = None):
        super().__init__(config, mock_mode=False)

        self.tenant_id = self.config.get("tenant_id")
        self.client_id = self.config.get("client_id")
        self.endpoint = self.config.get("endpoint", GRAPH_API_ENDPOINT).rstrip("/")
        self.timeout = self.config.get("timeout", 30)
        self.page_size = self.config.get("page_size", 999)
        self.credential = credential
        self.session = session

    def _build_credential(self) -> Any:
        client_secret = self.config.get("client_secret")
        if client_secret:
            if not self.tenant_id or not self.client_id:
                raise DirectoryConnectionError("tenant_id and client_id are required with a client secret")
            return ClientSecretCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                client_secret=client_secret,
            )
        return DefaultAzureCredential()

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=self.config.get("max_retries", 3),
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST", "PATCH", "DELETE"],
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _access_token(self) -> str:
        """Return a Graph access token; the credential caches it and refreshes near expiry."""
        try:
            return self.credential.get_token(GRAPH_SCOPE).token
        except ClientAuthenticationError as e:
            raise DirectoryConnectionError(f"Graph authentication failed: {e}") from e

    def connect(self) -> None:
        """Validate the credential and prepare the HTTP session."""
        if self.credential is None:
            self.credential = self._build_credential()
        self._access_token()

        if self.session is None:
            self.session = self._build_session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        self.connected = True
        logger.info(f"Connected to Microsoft Graph at {self.endpoint}")

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
        close_credential = getattr(self.credential, "close", None)
        if callable(close_credential):
            close_credential()
        self.connected = False
        logger.debug("Closed Microsoft Graph session")

    def _request(self, method: str, path_or_url: str, params: Optional[Dict[str, Any]] = None,
                 json_body: Any = None, headers: Optional[Dict[str, str]] = None) -> requests.Response:
        if not self.connected or self.session is None:
            raise DirectoryConnectionError("Graph connector is not connected")

        url = path_or_url if path_or_url.startswith("http") else f"{self.endpoint}{path_or_url}"
        # Access tokens expire mid-run; the credential returns a cached or refreshed one
        request_headers = {"Authorization": f"Bearer {self._access_token()}"}
        request_headers.update(headers or {})
        logger.debug(f"Graph {method} {url} params={params}")
        try:
            return self.session.request(
                method, url, params=params, json=json_body, headers=request_headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise DirectoryError(f"Graph {method} {url} failed: {e}") from e

    def _get_json(self, path_or_url: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = self._request("GET", path_or_url, params=params, headers=headers)
        if response.status_code >= 400:
            raise DirectoryError(
                f"Graph GET {path_or_url} returned {response.status_code}: {response.text[:500]}"
            )
        return response.json()

    def _paginate(self, path: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> Iterator[Dict[str, Any]]:
        """Yield every item of a collection, following @odata.nextLink."""
        payload = self._get_json(path, params=params, headers=headers)
        while True:
            for item in payload.get("value", []):
                yield item
            next_link = payload.get("@odata.nextLink")
            if not next_link:
                break
            payload = self._get_json(next_link, headers=headers)

    def _mutate(self, method: str, path: str, description: str, json_body: Any = None) -> ConnectorResult:
        try:
            response = self._request(method, path, json_body=json_body)
        except DirectoryError as e:
            logger.error(f"Failed to {description}: {e}")
            return ConnectorResult(False, f"Failed to {description}", error=str(e))

        if response.status_code >= 400:
            error = f"HTTP {response.status_code}: {response.text[:500]}"
            logger.error(f"Failed to {description}: {error}")
            return ConnectorResult(False, f"Failed to {description}", error=error)

        logger.info(f"Graph: {description}")
        return ConnectorResult(True, description)

    def get_context(self) -> DirectoryContext:
        payload = self._get_json("/organization", params={"$select": "id,displayName"})
        organizations = payload.get("value", [])
        org = organizations[0] if organizations else {}
        return DirectoryContext(
            tenant_id=org.get("id") or self.tenant_id or "unknown",
            tenant_name=org.get("displayName"),
            identity=self.client_id,
        )

    def list_accounts(self, account_filter: Optional[AccountFilter] = None) -> List[Account]:
        params: Dict[str, Any] = {
            "$select": ",".join(USER_SELECT_FIELDS),
            "$top": self.page_size,
        }
        headers = None
        if account_filter is not None:
            params["$filter"] = build_odata_filter(account_filter)
            params["$count"] = "true"
            headers = {"ConsistencyLevel": "eventual"}

        accounts = [Account.from_graph(user) for user in self._paginate("/users", params, headers)]
        logger.info(f"Retrieved {len(accounts)} accounts from Graph (filter={params.get('$filter')})")
        return accounts

    def get_group_by_name(self, name: str) -> Optional[Group]:
        params = {"$filter": f"displayName eq '{_quote(name)}'", "$select": "id,displayName"}
        groups = list(self._paginate("/groups", params))
        if not groups:
            return None
        if len(groups) > 1:
            logger.warning(f"{len(groups)} groups named '{name}', using {groups[0]['id']}")
        return Group(id=groups[0]["id"], display_name=groups[0]["displayName"])

    def create_group(self, name: str) -> Group:
        nickname = "".join(c for c in name if c.isalnum())[:64] or "inactivitygroup"
        body = {
            "displayName": name,
            "mailEnabled": False,
            "mailNickname": nickname,
            "securityEnabled": True,
        }
        response = self._request("POST", "/groups", json_body=body)
        if response.status_code >= 400:
            raise DirectoryError(f"Failed to create group '{name}': HTTP {response.status_code}: {response.text[:500]}")

        payload = response.json()
        logger.info(f"Created group {name} ({payload['id']})")
        return Group(id=payload["id"], display_name=payload.get("displayName", name))

    def list_group_members(self, group_id: str) -> List[str]:
        params = {"$select": "id", "$top": self.page_size}
        return [member["id"] for member in self._paginate(f"/groups/{group_id}/members", params)]

    def add_group_member(self, group_id: str, member_id: str) -> ConnectorResult:
        body = {"@odata.id": f"{self.endpoint}/directoryObjects/{member_id}"}
        return self._mutate("POST", f"/groups/{group_id}/members/$ref",
                            f"add {member_id} to group {group_id}", json_body=body)

    def remove_group_member(self, group_id: str, member_id: str) -> ConnectorResult:
        return self._mutate("DELETE", f"/groups/{group_id}/members/{member_id}/$ref",
                            f"remove {member_id} from group {group_id}")

    def set_account_enabled(self, account_id: str, enabled: bool) -> ConnectorResult:
        return self._mutate("PATCH", f"/users/{account_id}",
                            f"set accountEnabled={enabled} for {account_id}",
                            json_body={"accountEnabled": enabled})

    def remove_account(self, account_id: str) -> ConnectorResult:
        return self._mutate("DELETE", f"/users/{account_id}", f"remove account {account_id}")

    def list_license_catalog(self) -> List[LicenseSku]:
        payload = self._get_json("/subscribedSkus", params={"$select": "skuId,skuPartNumber"})
        return [
            LicenseSku(sku_id=sku["skuId"], sku_part_number=sku.get("skuPartNumber"))
            for sku in payload.get("value", [])
        ]
