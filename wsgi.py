"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi run-job deadline_sweep
    gunicorn wsgi:app
"""

from workplan import create_app

app = create_app()
