"""Run the scoped access gRPC service: ``python -m scopedaccess``."""

import asyncio

from .config import load_config_from_env
from .logging import setup_logging
from .service import serve


def main() -> None:
    config = load_config_from_env()
    setup_logging(config)
    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
