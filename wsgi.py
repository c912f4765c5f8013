"""
WSGI entry point for Gunicorn and other WSGI servers
"""
from main import app

if __name__ == "__main__":
    app.run()
