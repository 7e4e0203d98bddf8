"""Application entry point for the Penwise backend server."""

from penwise.app import App
from penwise.config import Config
from penwise.logging import setup_logging
from penwise.web.runner import run_server


def main() -> None:
    config = Config()
    setup_logging(config.debug)
    app = App(config)
    run_server(app, config)


if __name__ == "__main__":
    main()
