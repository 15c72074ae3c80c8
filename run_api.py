#!/usr/bin/env python
"""
Follower Integrity API Server Runner.

Usage:
    python run_api.py

Or with PM2:
    pm2 start run_api.py --interpreter python
"""

import os
import sys
import logging
import uvicorn

from core.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main():
    """Run the API server."""
    setup_logging(
        level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "text"),
    )

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", os.getenv("PORT", "8000")))
    reload = os.getenv("ENVIRONMENT", "production") == "development"

    logger.info(f"Starting Follower Integrity API on {host}:{port}")

    try:
        uvicorn.run(
            "app:create_app",
            factory=True,
            host=host,
            port=port,
            reload=reload,
            log_level="info",
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start API: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
