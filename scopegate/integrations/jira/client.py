from typing import Any, Dict, List, Optional

import requests

from scopegate.config import jira_timeout_seconds
from scopegate.organizations.credentials import OrganizationCredentials


class JiraClientError(RuntimeError):
    """Base Jira integration error."""


class JiraDependencyTimeout(JiraClientError):
    """Raised when Jira API calls exceed configured timeout."""


class JiraDependencyUnavailable(JiraClientError):
    """Raised for transport/server errors from Jira dependency."""


class JiraAuthError(JiraClientError):
    """Raised when Jira rejects the configured credentials (401/403)."""


class JiraQueryRejected(JiraClientError):
    """Raised when Jira refuses a JQL query as invalid (400)."""


class JiraIssueNotFound(JiraClientError):
    """Raised when an issue does not exist or is not visible to the caller."""


class JiraClient:
    def __init__(self, credentials: Optional[OrganizationCredentials] = None):
        creds = credentials or OrganizationCredentials.from_env() or OrganizationCredentials("", "", "")
        self.base_url = creds.host.rstrip("/")
        self.email = creds.email
        self.token = creds.api_token
        self.auth = (self.email, self.token)
        self.headers = {"Accept": "application/json", "Content-Type": "application/json"}
        self.default_timeout_seconds = jira_timeout_seconds()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> requests.Response:
        effective_timeout = timeout if timeout is not None else self.default_timeout_seconds
        try:
            return requests.request(
                method.upper(),
                self._url(path),
                auth=self.auth,
                headers=self.headers,
                timeout=effective_timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            raise JiraDependencyTimeout(f"Jira {method.upper()} {path} timed out after {effective_timeout}s") from exc
        except requests.RequestException as exc:
            raise JiraDependencyUnavailable(f"Jira {method.upper()} {path} request failed: {exc}") from exc

    def _check_status(self, resp: requests.Response, what: str) -> None:
        if resp.status_code in (401, 403):
            raise JiraAuthError(f"Jira rejected credentials during {what} (status {resp.status_code})")
        if resp.status_code == 400:
            raise JiraQueryRejected(f"Jira rejected {what}: {self._error_messages(resp)}")
        if resp.status_code >= 300:
            raise JiraDependencyUnavailable(f"Jira {what} failed with status {resp.status_code}")

    @staticmethod
    def _error_messages(resp: requests.Response) -> str:
        try:
            payload = resp.json() or {}
        except ValueError:
            return resp.text[:200]
        messages = payload.get("errorMessages") or []
        return "; ".join(str(m) for m in messages) or resp.text[:200]

    def check_permissions(self) -> bool:
        """Health check: verifies credentials and basic read access."""
        if not all([self.base_url, self.email, self.token]):
            return False
        try:
            resp = self._request("GET", "/rest/api/3/myself", timeout=min(self.default_timeout_seconds, 5))
            return resp.status_code == 200
        except JiraClientError:
            return False

    def search_issue_keys(self, jql: str, max_results: int) -> List[Dict[str, str]]:
        """
        Enhanced JQL search returning ``[{"key": ...}]``. Raises on transport,
        auth and query errors; never returns an empty list on failure.
        """
        resp = self._request(
            "POST",
            "/rest/api/3/search/jql",
            json={"jql": jql, "maxResults": max(1, int(max_results)), "fields": ["project"]},
            timeout=max(self.default_timeout_seconds, 10),
        )
        self._check_status(resp, "issue search")
        payload = resp.json() or {}
        rows = []
        for issue in payload.get("issues", []):
            if isinstance(issue, dict) and issue.get("key"):
                rows.append({"key": str(issue["key"])})
        return rows

    def fetch_issue_project_key(self, issue_key: str) -> str:
        resp = self._request(
            "GET",
            f"/rest/api/3/issue/{issue_key}",
            params={"fields": "project"},
            timeout=max(self.default_timeout_seconds, 10),
        )
        if resp.status_code == 404:
            raise JiraIssueNotFound(f"Issue {issue_key} was not found")
        self._check_status(resp, f"issue lookup for {issue_key}")
        payload = resp.json() or {}
        project = (payload.get("fields") or {}).get("project") or {}
        key = str(project.get("key") or "").strip()
        if not key:
            raise JiraDependencyUnavailable(f"Jira returned no project for {issue_key}")
        return key

    def list_project_keys(self, page_size: int = 50) -> List[str]:
        keys: List[str] = []
        start_at = 0
        while True:
            resp = self._request(
                "GET",
                "/rest/api/3/project/search",
                params={"startAt": start_at, "maxResults": page_size},
                timeout=max(self.default_timeout_seconds, 10),
            )
            self._check_status(resp, "project lookup")
            payload: Dict[str, Any] = resp.json() or {}
            values = payload.get("values", [])
            for row in values:
                if isinstance(row, dict):
                    value = str(row.get("key") or "").strip()
                    if value:
                        keys.append(value)
            if payload.get("isLast", True) or not values:
                break
            start_at += len(values)
        return sorted(set(keys))

    def list_space_keys(self, page_size: int = 250) -> List[str]:
        keys: List[str] = []
        path: Optional[str] = "/wiki/api/v2/spaces"
        params: Optional[Dict[str, Any]] = {"limit": page_size}
        while path:
            resp = self._request("GET", path, params=params, timeout=max(self.default_timeout_seconds, 10))
            self._check_status(resp, "Confluence space lookup")
            payload: Dict[str, Any] = resp.json() or {}
            for row in payload.get("results", []):
                if isinstance(row, dict):
                    value = str(row.get("key") or "").strip()
                    if value:
                        keys.append(value)
            path = (payload.get("_links") or {}).get("next")
            params = None
        return sorted(set(keys))
