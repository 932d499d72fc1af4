"""WSGI entry point: gunicorn wsgi:app"""

from ispops import create_app

app = create_app()
