"""Run the platform API under uvicorn."""

import os

import uvicorn

from platform_core.main import create_app


def main():
    """Serve the application on API_HOST:API_PORT."""
    api_host = os.getenv("API_HOST", "127.0.0.1")
    api_port = int(os.getenv("API_PORT", "8000"))

    uvicorn.run(
        create_app(),
        host=api_host,
        port=api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
