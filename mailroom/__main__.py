"""Entry point: ``python -m mailroom``."""

from __future__ import annotations

import uvicorn

from .app import create_app
from .config import MailroomConfig
from .logging import setup_logging


def main() -> None:
    config = MailroomConfig()
    setup_logging(json=config.log_json, level=config.log_level)
    app = create_app(config)
    uvicorn.run(app, host=config.api_host, port=config.api_port, log_config=None)


if __name__ == "__main__":
    main()
