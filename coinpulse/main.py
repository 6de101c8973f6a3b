# coinpulse/main.py
import argparse
import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

import uvicorn

from coinpulse.api.app import create_app
from coinpulse.config import Config, load_config

logger = logging.getLogger(__name__)


def parse_args(args: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="币种价格历史与实时交易服务")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="配置文件路径 (默认: config.yaml)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="覆盖配置中的端口",
    )
    return parser.parse_args(args)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def main(args: Sequence[str] | None = None) -> None:
    options = parse_args(args)
    config = load_config(options.config) if options.config.exists() else Config()
    setup_logging(config.server.log_level)
    if not options.config.exists():
        logger.warning(f"Config file {options.config} not found, using defaults")

    port = options.port or config.server.port
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(config),
            host=config.server.host,
            port=port,
            log_level=config.server.log_level.lower(),
        )
    )
    await server.serve()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
