"""
Employee assistant: document-search heuristics and chat completion.
"""
import logging
import os
import re
from datetime import datetime
from typing import List, Optional

import openai
from openai import OpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = logging.getLogger(__name__)

client: Optional[OpenAI] = None

SYSTEM_PROMPT = """You are the Atko Employee Assistant, a helpful AI assistant for Atko Corporation employees. You have access to company documents and can help with:
- Atko company policies and procedures
- HR questions and employee benefits
- IT support and technical issues
- General workplace inquiries
- Document search and creation

When users ask about company policies, benefits, or procedures, you can search through our document database and provide specific information from company documents. If asked to create or save information, let them know you can help create new documents.

Be helpful, professional, and concise. Always refer to the company as "Atko" or "Atko Corporation". When referencing document information, mention the document name for credibility."""

DOCUMENT_CONTEXT_TEMPLATE = (
    "Relevant company documents found:\n\n{context}\n\n"
    "Use this information to help answer the user's question. "
    "Reference the specific documents when providing information."
)

SEARCH_KEYWORDS = [
    'policy', 'policies', 'handbook', 'benefits', 'procedure', 'guidelines',
    'document', 'documents', 'rules', 'regulations', 'company', 'atko',
    'hr', 'it', 'finance', 'legal', 'department', 'remote work', 'vacation',
    'sick leave', 'health insurance', 'dental', 'vision', 'retirement',
    '401k', 'pto', 'time off', 'overtime', 'salary', 'bonus', 'stock options',
]

DOCUMENT_TYPES = ['policy', 'policies', 'handbook', 'manual', 'guide', 'guidelines',
                  'procedure', 'procedures', 'document', 'documents']
DEPARTMENTS = ['hr', 'human resources', 'it', 'engineering', 'finance', 'legal',
               'security', 'marketing', 'sales']
TOPICS = ['benefits', 'vacation', 'remote work', 'pto', 'time off', 'health', 'dental',
          'vision', 'retirement', '401k', 'sick leave', 'bonus', 'salary', 'stock options',
          'expense', 'reimbursement', 'onboarding', 'training']

FILLER_WORDS = {'about', 'have', 'there', 'some', 'any', 'all', 'many', 'much', 'more',
                'most', 'best', 'good', 'new', 'old'}

CREATE_KEYWORDS = [
    'create document', 'create a document', 'make a document', 'new document',
    'save this as document', 'document this', 'save as document',
    'create policy', 'write policy', 'document about', 'save this',
]
SEARCH_PHRASES = ['tell me', 'what', 'show me', 'find', 'search', 'look for', 'about the']

_CLEANUP_PATTERNS = [
    (r"^(what|how|when|where|why|who|which|can you|could you|please|help me|i need|i want|i'm looking for)\s+", ''),
    (r"\b(is|are|do|does|did|will|would|could|should|might|may|the|a|an|and|or|but|for|to|of|in|on|at|by|with|from)\b", ' '),
    (r"\b(tell me about|find|search|look up|show me|explain|give me|provide|get|fetch)\b", ''),
    (r"\b(information about|details about|info about|data about)\b", ''),
    (r"\b(do we have|are there|available|existing)\b", ''),
    (r"\?", ''),
    (r"\s+", ' '),
]


def _contains_term(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}\b", text) is not None


def should_search_documents(query: str) -> bool:
    """Return True if the message looks like a question about company documents."""
    lowered = (query or '').lower()
    return any(_contains_term(lowered, keyword) for keyword in SEARCH_KEYWORDS)


def extract_search_query(user_query: str) -> str:
    """
    Reduce a chat message to a short document search query.

    Known departments, topics and document types win; otherwise the first
    four meaningful words of the cleaned message are used.
    """
    query = (user_query or '').lower()

    key_terms = []
    for term in DEPARTMENTS + TOPICS + DOCUMENT_TYPES:
        if _contains_term(query, term) and term not in key_terms:
            key_terms.append(term)
    if key_terms:
        return ' '.join(key_terms)

    clean_query = query
    for pattern, replacement in _CLEANUP_PATTERNS:
        clean_query = re.sub(pattern, replacement, clean_query, flags=re.IGNORECASE)
    clean_query = clean_query.strip()

    words = [word for word in clean_query.split(' ') if len(word) > 2 and word not in FILLER_WORDS]
    return ' '.join(words[:4])


def format_document_context(documents: List[dict]) -> str:
    return '\n'.join(
        f"**Document {index}: {doc.get('title')}** ({doc.get('category')})\n{doc.get('content')}\n\n---"
        for index, doc in enumerate(documents, start=1)
    )


def is_document_creation_request(message: str) -> bool:
    """Only explicit creation requests that are not also search questions qualify."""
    lowered = (message or '').lower()
    explicit = any(keyword in lowered for keyword in CREATE_KEYWORDS)
    searching = any(phrase in lowered for phrase in SEARCH_PHRASES)
    return explicit and not searching


def extract_document_title(message: str, assistant_response: Optional[str] = None) -> str:
    match = re.search(r"create (?:a )?document (?:about |on |for )?(.+?)(?:\?|$|\.)", message, re.IGNORECASE)
    if match:
        return match.group(1).strip()

    match = re.search(r"(?:about|on|for|regarding) (.+?)(?:\?|$|\.)", message, re.IGNORECASE)
    if match:
        return match.group(1).strip()

    if assistant_response:
        match = re.search(r"##\s*(.+?)(?:\n|$)", assistant_response)
        if match:
            return match.group(1).strip()

    return f"Employee Request {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"


def _get_client() -> OpenAI:
    """Get or create the OpenAI client."""
    global client
    if client is None:
        api_key = os.getenv('OPENAI_API_KEY')
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable not set")
        client = OpenAI(api_key=api_key)
    return client


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    retry=retry_if_exception_type((openai.RateLimitError, openai.APIError)),
    reraise=True,
)
def _call_openai(messages: List[dict], model: str) -> str:
    """
    Call the chat completion API with retry logic.

    Raises:
        openai.RateLimitError: On rate limit (will be retried).
        openai.APIError: On API errors (will be retried).
    """
    response = _get_client().chat.completions.create(
        model=model,
        messages=messages,
        timeout=30.0,
    )
    return response.choices[0].message.content or ''


def generate_reply(messages: List[dict], document_context: str = '', model: Optional[str] = None) -> str:
    """
    Produce the assistant's reply to a conversation.

    Args:
        messages: Chat history as [{role, content}], last entry is the user turn.
        document_context: Formatted documents to ground the answer, if any.
        model: Model name (defaults to OPENAI_MODEL or gpt-4).

    Returns:
        Reply text.
    """
    model = model or os.getenv('OPENAI_MODEL', 'gpt-4')
    context_messages = list(messages)
    if document_context:
        context_messages.insert(
            len(context_messages) - 1,
            {'role': 'system', 'content': DOCUMENT_CONTEXT_TEMPLATE.format(context=document_context)},
        )

    logger.info(f"Generating assistant reply with {model} ({len(context_messages)} messages)")
    return _call_openai([{'role': 'system', 'content': SYSTEM_PROMPT}] + context_messages, model)


def configure_client(api_key: str) -> None:
    """Install the OpenAI client used for replies."""
    global client
    client = OpenAI(api_key=api_key)
