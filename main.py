"""
Main entrypoint: run the Wallet Persona FastAPI server under uvicorn.

Env: DATABASE_URL, ETHERSCAN_API_KEYS, ALCHEMY_API_KEYS, BITQUERY_API_KEYS, API_HOST, API_PORT, etc.

Equivalent: uvicorn wallet_persona.api_server.app:app --host 0.0.0.0 --port 3000
"""

import uvicorn

# Configure structured JSON logging before other imports that may log
from wallet_persona.persona_logging import get_logger
from wallet_persona.config import get_settings

logger = get_logger("main")


def main() -> None:
    settings = get_settings()
    if not (settings.etherscan_api_keys and settings.alchemy_api_keys and settings.bitquery_api_keys):
        logger.warning(
            "main_config_warning",
            message="Provider API keys missing; affected sources will degrade or fail aggregation",
        )
    logger.info("main_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(
        "wallet_persona.api_server.app:app",
        host=settings.api_host,
        port=settings.api_port,
    )


if __name__ == "__main__":
    main()
