"""
Entry point for the revision scheduler API.

Run with:
    uvicorn revision_scheduler.api.main:app --reload --port 8100
    python main.py
"""
import uvicorn

from config import get_settings
from revision_scheduler.logging_config import configure_logging

settings = get_settings()

if __name__ == "__main__":
    configure_logging(settings.log_level, settings.log_file)
    uvicorn.run(
        "revision_scheduler.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
