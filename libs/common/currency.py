"""Currency conversion utilities for the storefront.

Display / storage unit: Ghana cedi (Decimal, two places, e.g. 149.50).
Provider unit: pesewas (smallest GHS unit, 100 pesewas = GH₵1).

Paystack expects every amount as an integer count of pesewas.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

PESEWAS_PER_CEDI: int = 100

CENT = Decimal("0.01")


def quantize_money(amount: Decimal | float | int | str) -> Decimal:
    """Round a cedi amount to two places (round half-up)."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def cedis_to_pesewas(cedis: Decimal | float | int | str) -> int:
    """Convert cedis to pesewas. GH₵1 = 100 pesewas."""
    return int(quantize_money(cedis) * PESEWAS_PER_CEDI)


def pesewas_to_cedis(pesewas: int) -> Decimal:
    """Convert pesewas to cedis. 100 pesewas = GH₵1."""
    return quantize_money(Decimal(pesewas) / PESEWAS_PER_CEDI)
