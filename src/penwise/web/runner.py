"""Uvicorn server runner."""

import uvicorn

from penwise.app import App
from penwise.config import Config
from penwise.web.server import create_fastapi_app


def run_server(app: App, config: Config) -> None:
    """Run the Uvicorn server, logging through the handlers set up by setup_logging."""
    fastapi_app = create_fastapi_app(app, config)
    uvicorn.run(
        fastapi_app,
        host=config.host,
        port=config.port,
        log_config=None,
        access_log=config.debug,
        proxy_headers=True,
    )
