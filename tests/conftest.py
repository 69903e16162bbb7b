"""
Shared fixtures for the referral rewards ledger tests.

The app runs on TestingConfig (in-memory SQLite). Shopify and Klaviyo are
replaced with MagicMocks. The scheduler is off under TestingConfig, so
queued tasks run inline.
"""
import pytest
from decimal import Decimal
from unittest.mock import MagicMock, patch

from flask.testing import FlaskClient

from app import create_app
from app.config import RewardsSettings
from app.extensions import db
from app.models import User, UserAction
from app.services.klaviyo_service import KlaviyoService
from app.services.ledger_store import LedgerStore
from app.services.rewards_service import RewardsService
from app.services.shopify_client import ShopifyClient


class LedgerTestClient(FlaskClient):
    """
    Closes the test's open transaction before each request.

    The in-memory database is a single shared connection, so a request's
    session cannot BEGIN while the test's session still holds one.
    """

    def open(self, *args, **kwargs):
        db.session.commit()
        return super().open(*args, **kwargs)


@pytest.fixture
def app():
    """Create test application."""
    app = create_app('testing')
    app.test_client_class = LedgerTestClient
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def settings(app):
    return RewardsSettings.from_config(app.config)


@pytest.fixture
def store(app):
    return LedgerStore()


@pytest.fixture
def shopify():
    """Shopify client mock minting predictable codes."""
    client = MagicMock()
    counter = {'n': 0}

    def create_discount(value_spec=None, points=0, reward_kind='fixed_amount', collection_id=None):
        counter['n'] += 1
        if reward_kind == 'free_product':
            code = f'MILESTONEFREE_T{counter["n"]:04d}'
        elif value_spec in (None, 'dynamic'):
            code = f'POINTS{Decimal(points) / 100:.2f}CAD_T{counter["n"]:04d}'
        else:
            code = f'POINTS{value_spec}CAD_T{counter["n"]:04d}'
        return {'code': code, 'discount_id': f'gid://shopify/DiscountCodeNode/{counter["n"]}'}

    client.create_discount.side_effect = create_discount
    client.deactivate_discount.return_value = True
    client.get_customer_total_spent.return_value = Decimal('0')
    return client


@pytest.fixture
def klaviyo():
    client = MagicMock()
    client.subscribe_to_list.return_value = True
    return client


@pytest.fixture
def service(app, settings, store, shopify, klaviyo):
    """Rewards engine wired to mocks."""
    return RewardsService(settings, store=store, shopify=shopify, klaviyo=klaviyo)


@pytest.fixture
def collaborators(shopify, klaviyo):
    """Route handlers build their service from config; hand them the mocks."""
    with patch.object(ShopifyClient, 'from_settings', return_value=shopify), \
         patch.object(KlaviyoService, 'from_settings', return_value=klaviyo):
        yield shopify, klaviyo


@pytest.fixture
def make_user(app):
    """Factory for users with a matching signup action."""
    counter = {'n': 0}

    def _make_user(email=None, points=0, referral_code=None, referred_by=None, referral_count=0):
        counter['n'] += 1
        user = User(
            email=email or f'user{counter["n"]}@example.com',
            first_name=f'User{counter["n"]}',
            referral_code=referral_code or f'CODE{counter["n"]:02d}',
            referred_by=referred_by,
            referral_count=referral_count,
            points=points
        )
        db.session.add(user)
        db.session.flush()
        if points:
            db.session.add(UserAction(user_id=user.id, action_type='signup', points_awarded=points))
        db.session.commit()
        return user

    return _make_user
