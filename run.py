"""
Uvicorn server runner.

Usage:
    python run.py

Environment variables (set in .env file):
    DEBUG=true - Enable debug logging
    PORT=8000 - Set server port (default: 8000)
    HOST=127.0.0.1 - Set server host (default: 127.0.0.1)
    SLACK_TOKEN / GITHUB_TOKEN - Source credentials
    DB_PATH - SQLite database (default: ~/.threadmine/threadmine.db)
"""

import uvicorn
from threadmine.config import get_settings

if __name__ == "__main__":
    import os

    settings = get_settings()

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    log_level = "debug" if settings.debug else "info"

    print(f"Starting {settings.app_name} server...")
    print(f"Database: {settings.db_path}")
    print(f"Log Level: {log_level}")
    print(f"Docs available at: http://{host}:{port}/docs")

    uvicorn.run(
        "threadmine.main:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level=log_level,
        access_log=True,
    )
