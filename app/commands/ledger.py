"""
CLI Commands for ledger maintenance.

The audit can also be run from cron:

# Ledger audit (run daily at 3 AM)
0 3 * * * cd /app && flask ledger verify
"""

import click
from flask.cli import with_appcontext
from ..services.ledger_store import LedgerStore


@click.group('ledger')
def ledger_cli():
    """Ledger maintenance commands."""
    pass


@ledger_cli.command('verify')
@click.option('--email', help='Check a single user (or all if not specified)')
@with_appcontext
def verify_balances(email):
    """
    Replay action logs and report diverging balances.

    Exits with status 1 when any mismatch is found.
    """
    store = LedgerStore()

    if email and not store.find_user_by_email(email):
        click.echo(f"User {email} not found")
        raise SystemExit(1)

    mismatches = store.find_balance_mismatches(email=email)

    if not mismatches:
        click.echo("All balances match their action logs")
        return

    click.echo(f"Found {len(mismatches)} mismatched balance(s):")
    for row in mismatches:
        click.echo(
            f"  - {row['email']}: cached {row['cached_balance']}, "
            f"replayed {row['replayed_balance']} "
            f"(diff {row['cached_balance'] - row['replayed_balance']:+d})"
        )
    raise SystemExit(1)


@ledger_cli.command('user')
@click.argument('email')
@click.option('--limit', type=int, default=20, help='Number of actions to show')
@with_appcontext
def show_user(email, limit):
    """Show a user's balance, referral state and recent actions."""
    store = LedgerStore()
    user = store.find_user_by_email(email)
    if not user:
        click.echo(f"User {email} not found")
        raise SystemExit(1)

    click.echo(f"\n{user.email} ({user.first_name or '-'})")
    click.echo(f"  Points: {user.points} (replayed: {store.replay_balance(user)})")
    click.echo(f"  Referral code: {user.referral_code}")
    click.echo(f"  Referred by: {user.referred_by or '-'}")
    click.echo(f"  Referrals: {user.referral_count or 0}")
    click.echo(f"  Tier: {user.tier or '-'} (spent ${float(user.total_spent or 0):.2f})")

    outstanding = user.outstanding_redemption
    if outstanding:
        click.echo(f"  Outstanding code: {outstanding.discount_code} ({outstanding.points_spent} points)")

    milestones = user.redeemed_milestones
    if milestones:
        click.echo(f"  Milestones: {', '.join(f'{t} -> {c}' for t, c in sorted(milestones.items()))}")

    actions = store.list_actions_for_user(user, limit=limit)
    click.echo(f"\n  Recent actions ({len(actions)}):")
    for action in actions:
        created = action.created_at.strftime('%Y-%m-%d %H:%M') if action.created_at else '-'
        ref = f" [{action.action_ref}]" if action.action_ref else ''
        click.echo(f"    {created}  {action.action_type:<32} {action.points_awarded:+d}{ref}")


def init_app(app):
    """Register ledger CLI commands."""
    app.cli.add_command(ledger_cli)
