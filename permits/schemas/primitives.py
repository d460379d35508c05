from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import PlainSerializer

from permits.core.money import to_money

# Money goes over the wire as a two-decimal string ("650.00"), never a float.
Money = Annotated[Decimal, PlainSerializer(lambda d: f"{to_money(d):.2f}", return_type=str)]
