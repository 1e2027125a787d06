"""
Grounded legal Q&A gateway.

Domain Structure:
- gateway/    - HTTP surface (schemas, rate limiting, pipeline, SSE streaming, routes)
- providers/  - Evidence providers (Gemini web/file search, OpenAI passthrough)
- grounding/  - Post-processing (citations, source dedup, domain trust, strict mode)

Shared Utilities:
- config.py          - grounded_qa.toml + .env loader
- logging_config.py  - Structured logging with correlation IDs
- errors.py          - Error taxonomy mapped to HTTP status codes
"""
