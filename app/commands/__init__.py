"""
CLI Commands for the referral rewards ledger.

Usage:
    flask ledger verify                  # Check every cached balance against its action log
    flask ledger verify --email a@b.com  # Check a single user
    flask ledger user a@b.com            # Show a user's balance and recent actions
"""
from .ledger import init_app as init_ledger_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_ledger_commands(app)
