"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db init       # first time only (creates migrations/)
    flask db migrate -m "description"
    flask db upgrade
    flask seed-checklists
    flask run-job checklist_overdue_sweep
"""

from checklist_hub import create_app

app = create_app()
