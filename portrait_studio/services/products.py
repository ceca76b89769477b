from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional


CURRENCY_SYMBOLS = {
    'USD': '$',
    'CNY': '¥',
    'EUR': '€',
    'GBP': '£',
}


@dataclass(frozen=True)
class QuotaProduct:
    id: str
    quota: int
    name: Dict[str, str]
    description: Dict[str, str]
    prices: Dict[str, Decimal]
    popular: bool = False
    best_value: bool = False

    def localized(self, field: Dict[str, str], lang: str) -> str:
        return field.get(lang) or field['en']

    def to_dict(self, lang: str = 'en', currency: str = 'USD') -> Dict[str, Any]:
        currency = currency.upper()
        price = self.prices.get(currency)
        if price is None:
            currency, price = 'USD', self.prices['USD']
        return {
            'id': self.id,
            'quota': self.quota,
            'name': self.localized(self.name, lang),
            'description': self.localized(self.description, lang),
            'currency': currency,
            'price': str(price),
            'formattedPrice': format_price(price, currency),
            'popular': self.popular,
            'bestValue': self.best_value,
        }


QUOTA_PRODUCTS: List[QuotaProduct] = [
    QuotaProduct(
        id='starter-2',
        quota=2,
        name={'zh': '体验包', 'en': 'Starter Pack'},
        description={'zh': '适合偶尔需要生成照片', 'en': 'Perfect for occasional use'},
        prices={'USD': Decimal('1.99'), 'CNY': Decimal('4.99'), 'EUR': Decimal('1.79'), 'GBP': Decimal('1.59')},
    ),
    QuotaProduct(
        id='value-5',
        quota=5,
        name={'zh': '超值包', 'en': 'Value Pack'},
        description={'zh': '推荐给家庭使用，帮亲友一起生成', 'en': 'Recommended for family use'},
        prices={'USD': Decimal('3.99'), 'CNY': Decimal('9.99'), 'EUR': Decimal('3.59'), 'GBP': Decimal('3.19')},
        popular=True,
        best_value=True,
    ),
    QuotaProduct(
        id='pro-12',
        quota=12,
        name={'zh': '专业包', 'en': 'Pro Pack'},
        description={'zh': '经常使用，性价比最高', 'en': 'Frequent use, best value'},
        prices={'USD': Decimal('7.99'), 'CNY': Decimal('19.99'), 'EUR': Decimal('7.19'), 'GBP': Decimal('6.49')},
    ),
]


def list_products() -> List[QuotaProduct]:
    return list(QUOTA_PRODUCTS)


def get_product(product_id: str | None) -> Optional[QuotaProduct]:
    for product in QUOTA_PRODUCTS:
        if product.id == product_id:
            return product
    return None


def format_price(price: Decimal | float | str, currency: str) -> str:
    amount = Decimal(str(price)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    currency = currency.upper()
    return f'{CURRENCY_SYMBOLS.get(currency, currency)}{amount}'
