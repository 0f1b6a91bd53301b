"""Run the roomchat server: ``python -m roomchat``."""
import uvicorn

from roomchat.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "roomchat.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
