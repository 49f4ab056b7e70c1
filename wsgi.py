"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi purge-ended-windows --track IDP
    gunicorn wsgi:app
"""

from phasegate import create_app

app = create_app()
