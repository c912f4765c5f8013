"""
Application entry point.

DOCGATE_SERVICE selects the service to run:
    gateway   - auth server and document tool API (default)
    assistant - employee assistant chat API
"""
import logging
import os

from dotenv import load_dotenv

from docgate.config import Settings
from docgate.server import configure_logging, create_assistant_app, create_gateway_app

load_dotenv()

settings = Settings.from_env(dotenv=False)
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

SERVICE = os.getenv('DOCGATE_SERVICE', 'gateway').lower()
logger.info(f"Starting docgate {SERVICE} with settings: {settings.describe()}")

if SERVICE == 'assistant':
    app = create_assistant_app(settings)
elif SERVICE == 'gateway':
    app = create_gateway_app(settings)
else:
    raise SystemExit(f"Unknown DOCGATE_SERVICE {SERVICE!r}; expected gateway or assistant")

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=settings.port, debug=False)
