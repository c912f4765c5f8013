"""
Document tools exposed to the assistant: search_documents and create_document.

The document database is an external REST service; DocumentClient wraps it.
The handle_* functions hold the tool logic shared by the Flask tool server and
the Lambda handler and return (status_code, body) pairs.
"""
import logging
from typing import List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)

VALID_CATEGORIES = ['HR', 'IT', 'Company', 'Department', 'Finance', 'Legal']
DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 50
PREVIEW_LENGTH = 500
REQUEST_TIMEOUT = 10

TOOL_NAMES = ['search_documents', 'create_document']

TOOL_CATALOGUE = [
    {
        'name': 'search_documents',
        'description': 'Search for documents in the Atko internal document database',
        'parameters': {
            'query': {'type': 'string', 'description': 'Search query text', 'required': False},
            'category': {'type': 'string', 'description': 'Document category (HR, IT, Company, Department, Finance, Legal)', 'required': False},
            'author': {'type': 'string', 'description': 'Document author', 'required': False},
            'tags': {'type': 'array', 'description': 'Array of tags to search for', 'required': False},
            'limit': {'type': 'number', 'description': 'Maximum number of results (default: 10, max: 50)', 'required': False},
        },
    },
    {
        'name': 'create_document',
        'description': 'Create a new document in the Atko internal document database',
        'parameters': {
            'title': {'type': 'string', 'description': 'Document title', 'required': True},
            'content': {'type': 'string', 'description': 'Document content', 'required': True},
            'category': {'type': 'string', 'description': 'Document category (HR, IT, Company, Department, Finance, Legal)', 'required': True},
            'author': {'type': 'string', 'description': 'Document author', 'required': True},
            'tags': {'type': 'array', 'description': 'Array of tags', 'required': False},
            'isPublic': {'type': 'boolean', 'description': 'Whether document is public (default: true)', 'required': False},
        },
    },
]


class DocumentServiceError(Exception):
    """Raised when the document database call fails or reports failure."""
    pass


class DocumentClient:
    """REST client for the internal document database."""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: int = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, action: str, **kwargs):
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout,
                **kwargs
            )
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error calling document database ({action}): {e}")
            raise DocumentServiceError(f"Failed to {action}: {e}")

        if not isinstance(body, dict) or not body.get('success'):
            body = body if isinstance(body, dict) else {}
            raise DocumentServiceError(f"Failed to {action}: {body.get('error') or 'unknown error'}")
        return body.get('data')

    def search_documents(self, q: Optional[str] = None, category: Optional[str] = None,
                         author: Optional[str] = None, tags: Optional[List[str]] = None,
                         limit: Optional[int] = None) -> List[dict]:
        params = {'q': q, 'category': category, 'author': author, 'tags': tags, 'limit': limit}
        params = {key: value for key, value in params.items() if value is not None}
        data = self._request('GET', '/documents/search', 'search documents', params=params)
        return (data or {}).get('documents', [])

    def get_all_documents(self, **params) -> List[dict]:
        data = self._request('GET', '/documents', 'get documents', params=params)
        return (data or {}).get('documents', [])

    def get_document(self, document_id: str) -> dict:
        return self._request('GET', f"/documents/{document_id}", 'get document')

    def create_document(self, document: dict) -> dict:
        return self._request('POST', '/documents', 'create document', json=document)

    def get_categories(self) -> List[str]:
        data = self._request('GET', '/categories', 'get categories')
        return (data or {}).get('categories', [])

    def test_connection(self) -> bool:
        try:
            self.get_all_documents(limit=1)
            return True
        except DocumentServiceError:
            return False


def _preview(content: str) -> str:
    content = content or ''
    return content[:PREVIEW_LENGTH] + ('...' if len(content) > PREVIEW_LENGTH else '')


def _as_list(tags) -> Optional[list]:
    if tags is None or tags == '':
        return None
    return tags if isinstance(tags, list) else [tags]


def handle_search_documents(args: dict, client: Optional[DocumentClient]) -> Tuple[int, dict]:
    """Run search_documents; at least one criterion is required."""
    query = args.get('query')
    category = args.get('category')
    author = args.get('author')
    tags = _as_list(args.get('tags'))

    if not (query or category or author or tags):
        return 400, {
            'error': 'Missing parameters',
            'message': 'At least one search parameter (query, category, author, or tags) is required',
        }
    if client is None:
        return 503, {'error': 'Service unavailable', 'message': 'Document database URL not configured'}

    try:
        limit = min(int(args.get('limit') or DEFAULT_SEARCH_LIMIT), MAX_SEARCH_LIMIT)
    except (TypeError, ValueError):
        return 400, {'error': 'Invalid parameters', 'message': 'limit must be a number'}

    try:
        documents = client.search_documents(q=query, category=category, author=author, tags=tags, limit=limit)
    except DocumentServiceError as e:
        logger.error(f"Search Documents Error: {e}")
        return 500, {'error': 'Search failed', 'message': str(e)}

    logger.info(f"Document search found {len(documents)} documents")
    return 200, {
        'tool': 'search_documents',
        'result': {
            'success': True,
            'count': len(documents),
            'documents': [
                {
                    'id': doc.get('id'),
                    'title': doc.get('title'),
                    'content': _preview(doc.get('content')),
                    'category': doc.get('category'),
                    'author': doc.get('author'),
                    'tags': doc.get('tags', []),
                    'createdDate': doc.get('createdDate'),
                    'updatedDate': doc.get('updatedDate'),
                }
                for doc in documents
            ],
        },
    }


def handle_create_document(args: dict, client: Optional[DocumentClient]) -> Tuple[int, dict]:
    """Run create_document after validating required fields and category."""
    title = args.get('title')
    content = args.get('content')
    category = args.get('category')
    author = args.get('author')

    if not (title and content and category and author):
        return 400, {
            'error': 'Missing required parameters',
            'message': 'title, content, category, and author are required',
        }
    if client is None:
        return 503, {'error': 'Service unavailable', 'message': 'Document database URL not configured'}
    if category not in VALID_CATEGORIES:
        return 400, {
            'error': 'Invalid category',
            'message': f"Category must be one of: {', '.join(VALID_CATEGORIES)}",
        }

    document = {
        'title': title,
        'content': content,
        'category': category,
        'author': author,
        'tags': _as_list(args.get('tags')) or [],
        'isPublic': args.get('isPublic', True),
    }
    try:
        created = client.create_document(document)
    except DocumentServiceError as e:
        logger.error(f"Create Document Error: {e}")
        return 500, {'error': 'Document creation failed', 'message': str(e)}

    logger.info(f"Created document id={created.get('id')} title={created.get('title')!r}")
    return 201, {
        'tool': 'create_document',
        'result': {
            'success': True,
            'document': {
                'id': created.get('id'),
                'title': created.get('title'),
                'content': _preview(created.get('content')),
                'category': created.get('category'),
                'author': created.get('author'),
                'tags': created.get('tags', []),
                'createdDate': created.get('createdDate'),
                'version': created.get('version'),
            },
        },
    }


def call_tool(tool: Optional[str], args: Optional[dict], client: Optional[DocumentClient]) -> Tuple[int, dict]:
    """Dispatch a tool call by name."""
    args = args or {}
    if tool == 'search_documents':
        return handle_search_documents(args, client)
    if tool == 'create_document':
        return handle_create_document(args, client)
    return 400, {
        'error': 'Unknown tool',
        'message': f"Tool '{tool}' is not supported. Available tools: {', '.join(TOOL_NAMES)}",
    }
