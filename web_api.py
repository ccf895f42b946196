from __future__ import annotations

import logging

from dotenv import load_dotenv

from uzpharm.api.application import create_app
from uzpharm.core.config import AppConfig
from uzpharm.core.logging import setup_logging

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

app = create_app(APP_CONFIG)
LOGGER.info("uzpharm_auth_api_ready")
