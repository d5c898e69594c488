"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-reference reference.json
    gunicorn wsgi:app
"""

from tracker import create_app

app = create_app()
