"""API server entry point for python -m speedup.api"""
import uvicorn

from speedup.config import settings
from speedup.logging_config import configure_logging

if __name__ == "__main__":
    configure_logging(settings.log_level)
    uvicorn.run(
        "speedup.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
