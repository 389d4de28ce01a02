import uvicorn

from vidrelay.config.settings import config


def main() -> None:
    uvicorn.run(
        "vidrelay.main:app",
        host=config.api.host,
        port=config.api.port,
        proxy_headers=config.api.trust_proxy,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
