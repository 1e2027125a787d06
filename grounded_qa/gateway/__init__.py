"""
HTTP gateway for grounded question answering.

Components:
- schemas.py     - Pydantic models for request/response validation
- rate_limit.py  - Fixed-window per-client rate limiting
- pipeline.py    - Provider call + grounding post-processing shared by both endpoints
- streaming.py   - Server-sent events state machine for /api/chat/stream
- uploads.py     - Document upload into a Gemini file search store
- health.py      - Health checks
- middleware.py  - Correlation IDs and last-resort error handling
- api.py         - Route handlers for /api/*
"""

from grounded_qa.gateway.schemas import (
    ChatResponse,
    ConversationRequest,
    Message,
    Source,
    validate_chat_request,
)
from grounded_qa.gateway.rate_limit import RateLimiter, check_rate_limit
