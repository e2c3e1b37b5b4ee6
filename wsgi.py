"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-permissions
    flask --app wsgi expire-applications
    gunicorn wsgi:app
"""

from research_portal import create_app

app = create_app()
