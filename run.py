#!/usr/bin/env python3
"""
Empathic Agent Runner

This script starts the HTTP and websocket surface of the empathic agent.
"""

import logging

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from empathic_agent.config import Settings
from empathic_agent.context import init_all_services
from empathic_agent.server import create_app

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Main function to run the empathic agent server."""
    settings = Settings.from_env()

    logger.info("Starting Empathic Agent...")
    logger.info(f"Chat backend: {settings.chat_backend_url}")
    logger.info(f"Model server: {settings.model_server_url}")
    logger.info(f"Provider: {settings.provider} ({settings.model})")

    init_all_services(settings)
    app = create_app()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
