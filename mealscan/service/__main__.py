"""Run the food-analysis service: ``python -m mealscan.service``."""

import uvicorn

from mealscan.config import load_settings
from mealscan.logging_config import configure_logging
from mealscan.service.app import create_app


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level, json=settings.log_json)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
