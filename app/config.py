"""
Configuration management for the referral rewards service.
"""
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Storefront
    STORE_URL = os.getenv('STORE_URL', 'https://www.hemlockandoak.com')
    SHOP_DOMAIN = os.getenv('SHOP_DOMAIN', 'hemlock-oak.myshopify.com')

    # Shopify Admin API
    SHOPIFY_API_VERSION = os.getenv('SHOPIFY_API_VERSION', '2025-04')
    SHOPIFY_ADMIN_TOKEN = os.getenv('SHOPIFY_ADMIN_TOKEN')
    SHOPIFY_WEBHOOK_SECRET = os.getenv('SHOPIFY_WEBHOOK_SECRET')

    # Klaviyo
    KLAVIYO_API_KEY = os.getenv('KLAVIYO_API_KEY')
    KLAVIYO_LIST_ID = os.getenv('KLAVIYO_LIST_ID', 'Vc2WdM')

    # Judge.me
    JUDGEME_API_TOKEN = os.getenv('JUDGEME_API_TOKEN')

    # Guards /api/referral/test-purchase
    TEST_ENDPOINT_SECRET = os.getenv('TEST_ENDPOINT_SECRET')

    # Points program
    SIGNUP_POINTS = 5
    REFERRER_SIGNUP_BONUS = 5
    REFERRAL_BONUS_POINTS = 1500  # $15 worth, granted on the referee's first purchase
    WELCOME_DISCOUNT_VALUE = '15'

    ALLOWED_ACTIONS = {
        'social_media_follow': 50,
        'community_join': 50,
        'facebook_like': 50,
        'youtube_subscribe': 50,
        'share': 5,
        'instagram': 5,
        'fb': 5,
        'bonus': 5,
    }

    # Referral count -> reward
    MILESTONE_REWARDS = {
        5: {
            'name': 'Free Notebook',
            'collection_id': 'gid://shopify/Collection/410265616628',
        },
        10: {
            'name': 'Free Planner',
            'collection_id': 'gid://shopify/Collection/423756136692',
        },
        15: {
            'name': 'Free Planner',
            'collection_id': 'gid://shopify/Collection/423756136692',
        },
    }

    # Purchase earning tiers, ascending by lifetime spend
    REWARD_TIERS = [
        {'name': 'Bronze', 'min_spent': 0, 'points_per_dollar': 5},
        {'name': 'Silver', 'min_spent': 250, 'points_per_dollar': 6},
        {'name': 'Gold', 'min_spent': 750, 'points_per_dollar': 8},
        {'name': 'Platinum', 'min_spent': 1500, 'points_per_dollar': 10},
    ]

    CORS_ORIGINS = [
        'https://www.hemlockandoak.com',
        'https://hemlock-oak.myshopify.com',
        'http://127.0.0.1:9292',
        'http://localhost:9292',
        'http://localhost:3000',
    ]


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///referrals_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,  # Neon drops idle connections
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production environment.

        Raises:
            RuntimeError: If SECRET_KEY is missing or too short
        """
        if not cls._secret_key:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable is not set!\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        if len(cls._secret_key) < 32:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!"
            )

        return cls._secret_key

    SECRET_KEY = _secret_key  # Validated at app startup


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SHOPIFY_ADMIN_TOKEN = 'test-admin-token'
    SHOPIFY_WEBHOOK_SECRET = 'test-webhook-secret'
    KLAVIYO_API_KEY = 'test-klaviyo-key'
    KLAVIYO_LIST_ID = 'TestList'
    JUDGEME_API_TOKEN = 'test-judgeme-token'
    TEST_ENDPOINT_SECRET = 'test-endpoint-secret'


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()


@dataclass(frozen=True)
class RewardsSettings:
    """
    Explicit settings handed to the rewards engine and its collaborators.

    Built once from the Flask config so no service reads the process
    environment on its own.
    """
    store_url: str
    shop_domain: str
    signup_points: int = 5
    referrer_signup_bonus: int = 5
    referral_bonus_points: int = 1500
    welcome_discount_value: str = '15'
    allowed_actions: Dict[str, int] = field(default_factory=dict)
    milestone_rewards: Dict[int, Dict[str, str]] = field(default_factory=dict)
    tiers: List[Dict[str, Any]] = field(default_factory=list)
    shopify_api_version: str = '2025-04'
    shopify_admin_token: Optional[str] = None
    shopify_webhook_secret: Optional[str] = None
    klaviyo_api_key: Optional[str] = None
    klaviyo_list_id: Optional[str] = None
    judgeme_api_token: Optional[str] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'RewardsSettings':
        """Build settings from a Flask config mapping."""
        milestones = {
            int(threshold): dict(reward)
            for threshold, reward in (config.get('MILESTONE_REWARDS') or {}).items()
        }
        return cls(
            store_url=config.get('STORE_URL', BaseConfig.STORE_URL),
            shop_domain=config.get('SHOP_DOMAIN', BaseConfig.SHOP_DOMAIN),
            signup_points=int(config.get('SIGNUP_POINTS', BaseConfig.SIGNUP_POINTS)),
            referrer_signup_bonus=int(config.get('REFERRER_SIGNUP_BONUS', BaseConfig.REFERRER_SIGNUP_BONUS)),
            referral_bonus_points=int(config.get('REFERRAL_BONUS_POINTS', BaseConfig.REFERRAL_BONUS_POINTS)),
            welcome_discount_value=str(config.get('WELCOME_DISCOUNT_VALUE', BaseConfig.WELCOME_DISCOUNT_VALUE)),
            allowed_actions=dict(config.get('ALLOWED_ACTIONS') or {}),
            milestone_rewards=milestones,
            tiers=list(config.get('REWARD_TIERS') or []),
            shopify_api_version=config.get('SHOPIFY_API_VERSION', BaseConfig.SHOPIFY_API_VERSION),
            shopify_admin_token=config.get('SHOPIFY_ADMIN_TOKEN'),
            shopify_webhook_secret=config.get('SHOPIFY_WEBHOOK_SECRET'),
            klaviyo_api_key=config.get('KLAVIYO_API_KEY'),
            klaviyo_list_id=config.get('KLAVIYO_LIST_ID'),
            judgeme_api_token=config.get('JUDGEME_API_TOKEN'),
        )
