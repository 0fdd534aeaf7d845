"""Default membership tier table"""
from decimal import Decimal

DEFAULT_TIERS = [
    {
        'type': 'free',
        'name': 'Free',
        'description': 'Start selling with a handful of listings',
        'monthly_price': Decimal('0.00'),
        'yearly_price': Decimal('0.00'),
        'max_free_listings': 5,
        'max_total_listings': 10,
        'max_images_per_listing': 6,
        'can_trade': False,
        'can_create_collections': False,
        'commission_rate': Decimal('8.00'),
        'sort_order': 0,
    },
    {
        'type': 'basic',
        'name': 'Basic',
        'description': 'More listings for regular sellers',
        'monthly_price': Decimal('49.00'),
        'yearly_price': Decimal('470.00'),
        'max_free_listings': 15,
        'max_total_listings': 50,
        'max_images_per_listing': 10,
        'can_trade': False,
        'can_create_collections': False,
        'commission_rate': Decimal('7.00'),
        'sort_order': 1,
    },
    {
        'type': 'premium',
        'name': 'Premium',
        'description': 'Trading, Digital Garage collections and lower commission',
        'monthly_price': Decimal('99.00'),
        'yearly_price': Decimal('950.00'),
        'max_free_listings': 50,
        'max_total_listings': 200,
        'max_images_per_listing': 15,
        'can_trade': True,
        'can_create_collections': True,
        'commission_rate': Decimal('5.00'),
        'sort_order': 2,
    },
    {
        'type': 'business',
        'name': 'Business',
        'description': 'High volume stores',
        'monthly_price': Decimal('499.00'),
        'yearly_price': Decimal('4790.00'),
        'max_free_listings': 200,
        'max_total_listings': 1000,
        'max_images_per_listing': 20,
        'can_trade': True,
        'can_create_collections': True,
        'commission_rate': Decimal('3.00'),
        'sort_order': 3,
    },
]

FREE_TIER = DEFAULT_TIERS[0]
