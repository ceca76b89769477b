from __future__ import annotations

import uvicorn

from portrait_studio.config import get_settings
from portrait_studio.utils.logging import configure_logging
from portrait_studio.web.app import create_app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.web_host,
        port=settings.web_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
