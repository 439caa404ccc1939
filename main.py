"""
Limousine Dispatch Ride Lifecycle Backend
=========================================
Entry point. Run with: uvicorn main:app --reload

Host, port and reload come from ``API_HOST`` / ``API_PORT`` / ``API_RELOAD``
when started as ``python main.py``.
"""

import uvicorn

from src.api.app import create_app
from src.config import settings

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
        log_level=settings.log_level.lower(),
    )
