"""Run the contact mailer HTTP service with uvicorn.

Configuration is read from ``config.ini`` (override with ``MAILER_CONFIG``)
with ``MAILER_*`` environment variables as fallbacks.
"""

import uvicorn

from contact_mailer.config_loader import load_settings
from contact_mailer.logger import configure_logging
from contact_mailer.server import build_app


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    uvicorn.run(build_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
