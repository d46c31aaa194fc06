"""
Airport Transfer Booking Backend
================================
Entry point.  ``uvicorn main:app`` in production; ``python main.py`` for a
local server with auto-reload on ``API_HOST``/``API_PORT``.
"""

import uvicorn

from transfer.api.app import create_app
from transfer.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=True,
    )
