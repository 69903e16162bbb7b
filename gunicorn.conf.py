"""
Gunicorn configuration for the referral rewards service.
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Sync workers; ledger writes rely on database constraints, not process locality
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 60  # Shopify GraphQL calls sit on the request path
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'referral-ledger'

# Each worker builds its own app so its background scheduler thread survives the fork
preload_app = False

graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting referral rewards server...")


def on_exit(server):
    print("[Gunicorn] Referral rewards server shutting down...")
