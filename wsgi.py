"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi create-tenant "Rowing Club" rowing-club
    gunicorn wsgi:app
"""

from valuechain import create_app

app = create_app()
