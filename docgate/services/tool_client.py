"""
HTTP client for the document tool server, used by the employee assistant.
"""
import logging
from typing import List, Optional

import requests

from docgate.auth.errors import TokenExpiredError
from docgate.auth.token_guard import ensure_token_or_401

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class ToolCallError(Exception):
    """Raised when a tool call cannot be made or the server rejects it."""
    pass


def _json_body(response) -> dict:
    try:
        body = response.json()
    except ValueError:
        raise ToolCallError(f"HTTP {response.status_code}: response is not JSON")
    if not isinstance(body, dict):
        raise ToolCallError(f"HTTP {response.status_code}: expected a JSON object")
    return body


class ToolClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: int = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def call_tool(self, tool: str, arguments: dict, bearer: Optional[str]) -> dict:
        """
        Call one tool with a bearer credential.

        Args:
            tool: Tool name, e.g. search_documents.
            arguments: Tool arguments.
            bearer: Service access token (direct-exchange) or ID-JAG grant
                (inline-authorizer).

        Returns:
            The tool server's JSON response ({tool, result}).

        Raises:
            ToolCallError: No usable token, transport failure or non-2xx answer.
        """
        try:
            bearer = ensure_token_or_401(bearer)
        except TokenExpiredError:
            raise ToolCallError("No valid access token available. Acquire tokens first.")

        try:
            response = self.session.post(
                f"{self.base_url}/tools/call",
                json={'tool': tool, 'arguments': arguments},
                headers={
                    'Content-Type': 'application/json',
                    'Authorization': f"Bearer {bearer}",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"MCP tool call failed: {e}")
            raise ToolCallError(f"Tool call {tool} failed: {e}")

        if not response.ok:
            raise ToolCallError(f"HTTP {response.status_code}: {response.reason}")
        return _json_body(response)

    def search_documents(self, bearer: str, query: Optional[str] = None, category: Optional[str] = None,
                         author: Optional[str] = None, tags: Optional[List[str]] = None,
                         limit: Optional[int] = None) -> dict:
        arguments = {'query': query, 'category': category, 'author': author, 'tags': tags, 'limit': limit}
        arguments = {key: value for key, value in arguments.items() if value is not None}
        return self.call_tool('search_documents', arguments, bearer)

    def create_document(self, bearer: str, title: str, content: str, category: str, author: str,
                        tags: Optional[List[str]] = None, is_public: bool = True) -> dict:
        arguments = {
            'title': title,
            'content': content,
            'category': category,
            'author': author,
            'tags': tags or [],
            'isPublic': is_public,
        }
        return self.call_tool('create_document', arguments, bearer)

    def check_connection(self) -> bool:
        try:
            return self.session.get(f"{self.base_url}/health", timeout=self.timeout).ok
        except requests.RequestException as e:
            logger.warning(f"MCP connection check failed: {e}")
            return False

    def get_available_tools(self) -> dict:
        try:
            response = self.session.get(f"{self.base_url}/tools", timeout=self.timeout)
        except requests.RequestException as e:
            raise ToolCallError(f"Failed to get available tools: {e}")
        if not response.ok:
            raise ToolCallError(f"HTTP {response.status_code}: {response.reason}")
        return _json_body(response)
