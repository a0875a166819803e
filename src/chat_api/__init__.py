"""Chat-API: streamed LLM chat completions with chat persistence.

This package provides a FastAPI service with:
- POST /api/chat relaying an OpenAI-compatible provider stream as plain text
- DELETE /api/chat with owner checks
- Async SQLModel persistence of chats and messages
- JWT / gateway-header session resolution
- structlog request logging and in-process SLO counters
"""

__version__ = "0.1.0"
