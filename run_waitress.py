"""
Run the selected docgate service with the Waitress WSGI server
"""
import logging

from waitress import serve

from main import SERVICE, app, settings

logger = logging.getLogger(__name__)

if __name__ == '__main__':
    logger.info(f"Serving docgate {SERVICE} with Waitress on port {settings.port}")
    serve(app, host='0.0.0.0', port=settings.port, threads=4)
