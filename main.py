"""
API server for the grounded legal Q&A gateway.

Run with ``python main.py`` or ``uvicorn main:asgi_app``.
"""

import uvicorn

from grounded_qa.app import create_app
from grounded_qa.config import get
from grounded_qa.logging_config import configure_logging, get_logger, is_production

# Initialize centralized logging
LOG_LEVEL = get("app", "log_level").upper()
configure_logging(
    log_level=LOG_LEVEL,
    service="grounded_qa",
    enable_file_logging=is_production(),
)
logger = get_logger("grounded_qa.main")

app = create_app()

# Alias for compatibility with existing uvicorn command
asgi_app = app

if __name__ == "__main__":
    HOT_RELOAD = get("app", "hot_reload")
    logger.info(f"Starting app with hot reload: {HOT_RELOAD}")
    uvicorn.run(
        "main:asgi_app",
        host=get("app", "host"),
        port=get("app", "port"),
        reload=HOT_RELOAD,
    )
