import logging

import uvicorn

from spotswitch.api import create_app
from spotswitch.config import load_settings


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(initial_settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port, lifespan="on")


if __name__ == "__main__":
    main()
