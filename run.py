"""
Referral rewards ledger entry point.
"""
import os
import sys
import traceback

print("[Referrals] ========================================")
print("[Referrals] Starting Referral Rewards Ledger v1.0.0")
print("[Referrals] ========================================")

# Default to production for deployment
config_name = os.getenv('FLASK_ENV', 'production')
print(f"[Referrals] Config: {config_name}")
print(f"[Referrals] PORT: {os.getenv('PORT', 'not set')}")
print(f"[Referrals] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")

try:
    from app import create_app
    app = create_app(config_name)
    print(f"[Referrals] App created with {len(list(app.url_map.iter_rules()))} routes")
except Exception as e:
    print(f"[Referrals] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
