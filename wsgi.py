"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db upgrade
    flask migrate-chantier-phases --dry-run
"""

from sitetrack import create_app

app = create_app()
