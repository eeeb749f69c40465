"""
CLI Commands for the loyalty service.

Usage:
    flask loyalty seed-templates --merchant-id 1
    flask loyalty provision --merchant-id 1 --customer-id <id>
    flask loyalty balance --merchant-id 1 --customer-id <id>
"""
from .loyalty import loyalty_cli


def init_app(app):
    """Register all CLI commands with the Flask app."""
    app.cli.add_command(loyalty_cli)
