# ================================================================
# File     : client.py
# Purpose  : Microsoft Graph API read-only client for Intune
# Notes    : Read-only: GET + pagination + retries. No destructive ops.
#            - Intune device management lives on the beta endpoint
#            - Auto-refresh token on 401
#            - Proactive refresh if token expires in <5 minutes
# ================================================================

import os
import time
import getpass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Any, List, Optional

import msal
import requests

from core.utils import fncPrintMessage, fncRetry, fncMask

GRAPH_HOST = "https://graph.microsoft.com"


class GraphError(Exception):
    """A Graph request came back with an error status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class GraphTransientError(GraphError):
    """5xx from Graph; worth another go."""


class GraphAuthError(GraphError):
    """Token acquisition failed. Nothing else can run without one."""


RETRYABLE = (requests.ConnectionError, requests.Timeout, GraphTransientError)

MAX_THROTTLE_RETRIES = 5
DEFAULT_RETRY_AFTER = 5


# ================================================================
# Function: fncRetryAfterSeconds
# Purpose : Turn a Retry-After header into a sleep in seconds
# Notes   : Accepts delta-seconds or an HTTP-date; falls back to
#           DEFAULT_RETRY_AFTER when missing or unparseable
# ================================================================
def fncRetryAfterSeconds(value: Optional[str], default: int = DEFAULT_RETRY_AFTER) -> int:
    if value is None or not str(value).strip():
        return default
    value = str(value).strip()
    try:
        return max(0, int(float(value)))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0, int((when - datetime.now(timezone.utc)).total_seconds()))


class GraphClient:
    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        authority_host: str = "https://login.microsoftonline.com",
        api_version: str = "beta",
        timeout: int = 60,
    ):
        tenant_id = tenant_id or os.getenv("INTUNEBEAGLE_TENANT_ID")
        client_id = client_id or os.getenv("INTUNEBEAGLE_CLIENT_ID")
        client_secret = client_secret or os.getenv("INTUNEBEAGLE_CLIENT_SECRET")

        # Prompt interactively if any credential is missing
        if not tenant_id:
            tenant_id = input("Enter Tenant ID: ").strip()
        if not client_id:
            client_id = input("Enter Application (Client) ID: ").strip()
        if not client_secret:
            fncPrintMessage(
                "No Client Secret found. It is kept in memory for this session only.",
                "warn",
            )
            client_secret = getpass.getpass("Enter Client Secret (input hidden): ").strip()

        self.tenant_id = tenant_id
        self.client_id = client_id
        self.api_version = api_version.strip("/")
        self.timeout = timeout

        # Application scope (app-only). Needs DeviceManagementConfiguration.Read.All + Group.Read.All
        self.scope = ["https://graph.microsoft.com/.default"]
        self.authority = f"{authority_host.rstrip('/')}/{tenant_id}"

        fncPrintMessage(f"Initialising Microsoft Graph client (app {fncMask(client_id)})...", "info")

        try:
            self.app = msal.ConfidentialClientApplication(
                client_id=self.client_id,
                client_credential=client_secret,
                authority=self.authority,
            )
        except ValueError as ex:
            raise GraphAuthError(f"Invalid authority or client configuration: {ex}") from ex

        self.session = requests.Session()

        # token/bookkeeping
        self.token: str = ""
        self._token_expires_on: int = 0  # epoch seconds
        self._set_token(self._acquire_token())

        fncPrintMessage("GraphClient initialised (read-only).", "success")

    # ---------- Token helpers ----------

    def _acquire_token(self) -> Dict[str, Any]:
        """Acquire a token using MSAL (silent -> client creds). Returns MSAL result dict."""
        fncPrintMessage("Requesting Microsoft Graph access token...", "debug")
        try:
            result = self.app.acquire_token_silent(self.scope, account=None)
            if not result:
                result = self.app.acquire_token_for_client(scopes=self.scope)
        except requests.RequestException as ex:
            raise GraphAuthError(f"Could not reach the token endpoint: {ex}") from ex
        if "access_token" not in result:
            raise GraphAuthError(
                f"MSAL authentication failed: {result.get('error_description', 'Unknown error')}"
            )
        return result

    def _set_token(self, msal_result: Dict[str, Any]) -> None:
        """Store token and expiry from MSAL result."""
        self.token = msal_result["access_token"]
        try:
            self._token_expires_on = int(msal_result.get("expires_on") or 0)
        except (TypeError, ValueError):
            self._token_expires_on = 0
        if not self._token_expires_on:
            self._token_expires_on = int(time.time()) + int(msal_result.get("expires_in", 3600))

    def _ensure_fresh_token(self) -> None:
        """Proactively refresh token if it expires in <5 minutes."""
        now = int(time.time())
        if now >= (self._token_expires_on - 300):
            fncPrintMessage("Refreshing access token (nearing expiry)...", "debug")
            self._set_token(self._acquire_token())

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

    # ---------- HTTP handling ----------

    def _send(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        return self.session.get(url, headers=self._auth_headers(), params=params, timeout=self.timeout)

    def _handle_response(self, response: requests.Response, url: str,
                         params: Optional[Dict[str, Any]] = None, refreshed: bool = False,
                         throttled: int = 0, quiet: bool = False) -> Dict[str, Any]:
        status = response.status_code

        if status == 200:
            return response.json()

        # Rate limit
        if status == 429:
            if throttled >= MAX_THROTTLE_RETRIES:
                raise GraphTransientError(
                    f"Graph API still throttling after {throttled} waits", status
                )
            retry_after = fncRetryAfterSeconds(response.headers.get("Retry-After"))
            fncPrintMessage(f"Rate limit hit. Sleeping for {retry_after}s...", "debug" if quiet else "warn")
            time.sleep(retry_after)
            return self._handle_response(self._send(url, params), url, params, refreshed,
                                         throttled=throttled + 1, quiet=quiet)

        # Unauthorized (refresh and retry once)
        if status == 401 and not refreshed:
            fncPrintMessage("Access token rejected, attempting refresh.", "debug" if quiet else "warn")
            self._set_token(self._acquire_token())
            return self._handle_response(self._send(url, params), url, params, refreshed=True,
                                         throttled=throttled, quiet=quiet)

        if status >= 500:
            fncPrintMessage(f"Graph API Error [{status}] -> {response.text[:300]}", "debug")
            raise GraphTransientError(f"Graph API request failed with status {status}", status)

        if status >= 400:
            fncPrintMessage(f"Graph API Error [{status}] -> {response.text[:300]}", "debug")
            raise GraphError(f"Graph API request failed with status {status}", status)

        try:
            return response.json()
        except ValueError:
            return {"status": status, "text": response.text}

    def _request(self, url: str, params: Optional[Dict[str, Any]] = None, quiet: bool = False) -> Dict[str, Any]:
        """Single GET with proactive token refresh and 401 auto-refresh retry."""
        self._ensure_fresh_token()
        return self._handle_response(self._send(url, params), url, params, quiet=quiet)

    def _url(self, endpoint: str, api_version: Optional[str] = None) -> str:
        version = (api_version or self.api_version).strip("/")
        return f"{GRAPH_HOST}/{version}/{endpoint.strip().lstrip('/')}"

    # ---------- Public API ----------

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None,
            api_version: Optional[str] = None, quiet: bool = False) -> Dict[str, Any]:
        """
        Perform a GET request to a Graph endpoint (single page).
        Use get_all for paginated resources. quiet=True keeps retry
        chatter at debug level for lookups whose failure is expected
        to be absorbed by the caller.
        """
        url = self._url(endpoint, api_version)
        fncPrintMessage(f"GET {url}", "debug")
        return fncRetry(lambda: self._request(url, params=params, quiet=quiet), exceptions=RETRYABLE, quiet=quiet)

    def get_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None,
                api_version: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Retrieve all items from a paginated Graph endpoint.
        Returns a flat list of items (value) for list endpoints.
        Example: client.get_all("deviceManagement/deviceHealthScripts")
        """
        url = self._url(endpoint, api_version)
        fncPrintMessage(f"GET (all pages) {url}", "debug")

        data = fncRetry(lambda: self._request(url, params=params), exceptions=RETRYABLE)

        if isinstance(data, dict) and "value" not in data:
            return [data]
        if not isinstance(data, dict):
            return []

        items: List[Dict[str, Any]] = list(data.get("value", []))
        next_link = data.get("@odata.nextLink")

        while next_link:
            fncPrintMessage(f"Following nextLink -> {next_link}", "debug")
            link = next_link
            page = fncRetry(lambda: self._request(link), exceptions=RETRYABLE)
            if not isinstance(page, dict):
                break
            items.extend(page.get("value", []))
            next_link = page.get("@odata.nextLink")

        return items
