"""
Pure price computation for a party on a tour date.

Nothing here touches the database or the clock: the same inputs always
produce the same ``PriceBreakdown``, which is what lets the quote shown at
checkout and the amount charged at reservation agree to the cent.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence
from uuid import UUID

from ..models.tour import AddonPriceType
from ..schemas.pricing import PriceBreakdown

_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class TourPricing:
    """Price-relevant fields of a tour."""

    base_price: int
    currency: str
    child_price: int | None = None
    infant_price: int = 0
    deposit_enabled: bool = False
    deposit_percentage: float = 30.0


@dataclass(frozen=True)
class PricingRules:
    """Per-tour pricing rules; the defaults are the platform defaults."""

    child_discount_percent: float = 30.0
    child_min_age: int = 3
    child_max_age: int = 11
    infant_max_age: int = 2
    infant_price: int | None = None
    service_fee_percent: float = 5.0
    service_fee_fixed: int | None = None
    deposit_percent: float | None = None
    deposit_minimum: int | None = None
    group_discount_threshold: int | None = None
    group_discount_percent: float | None = None
    early_bird_days: int | None = None
    early_bird_percent: float | None = None


DEFAULT_RULES = PricingRules()


@dataclass(frozen=True)
class Party:
    adults: int
    children: int = 0
    infants: int = 0

    @property
    def size(self) -> int:
        return self.adults + self.children + self.infants


@dataclass(frozen=True)
class AccommodationLine:
    """One selected night at an accommodation option."""

    option_id: UUID
    price_per_night: int


@dataclass(frozen=True)
class AddonLine:
    addon_id: UUID
    price: int
    price_type: str = AddonPriceType.PER_PERSON
    child_price: int | None = None


@dataclass(frozen=True)
class PriceRequest:
    """Everything the engine needs, bundled for replay at reservation time."""

    tour: TourPricing
    party: Party
    start_date: date
    booked_on: date
    rules: PricingRules = DEFAULT_RULES
    accommodations: Sequence[AccommodationLine] = field(default_factory=tuple)
    addons: Sequence[AddonLine] = field(default_factory=tuple)


def percent_of(amount: int, percent: float | Decimal | None) -> int:
    """``amount * percent / 100`` rounded half-up to whole minor units."""
    if not percent or amount <= 0:
        return 0
    value = Decimal(amount) * Decimal(str(percent)) / _HUNDRED
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def classify_ages(ages: Iterable[int], rules: PricingRules = DEFAULT_RULES) -> Party:
    """
    Split traveller ages into adults, children and infants using the age bands.

    Ages at or below ``infant_max_age`` are infants, ages up to
    ``child_max_age`` are children and everyone older pays the adult price.
    Stored configs always have ``child_min_age == infant_max_age + 1``, so
    the child band needs no lower bound check here.
    """
    adults = children = infants = 0
    for age in ages:
        if age <= rules.infant_max_age:
            infants += 1
        elif age <= rules.child_max_age:
            children += 1
        else:
            adults += 1
    return Party(adults=adults, children=children, infants=infants)


def child_unit_price(tour: TourPricing, rules: PricingRules) -> int:
    if tour.child_price is not None:
        return tour.child_price
    return tour.base_price - percent_of(tour.base_price, rules.child_discount_percent)


def infant_unit_price(tour: TourPricing, rules: PricingRules) -> int:
    if rules.infant_price is not None:
        return rules.infant_price
    return tour.infant_price


def _addon_amount(addon: AddonLine, party: Party) -> int:
    if addon.price_type == AddonPriceType.PER_PERSON:
        child_price = addon.child_price if addon.child_price is not None else addon.price
        return addon.price * party.adults + child_price * party.children
    # PER_GROUP and FLAT are charged once per booking
    return addon.price


def group_discount_applies(party: Party, rules: PricingRules) -> bool:
    return (
        rules.group_discount_threshold is not None
        and bool(rules.group_discount_percent)
        and party.size >= rules.group_discount_threshold
    )


def early_bird_applies(start_date: date, booked_on: date, rules: PricingRules) -> bool:
    return (
        rules.early_bird_days is not None
        and bool(rules.early_bird_percent)
        and (start_date - booked_on).days >= rules.early_bird_days
    )


def deposit_for(total: int, tour: TourPricing, rules: PricingRules) -> int:
    """Amount due up front; the whole total when deposits are disabled."""
    if not tour.deposit_enabled:
        return total
    percent = rules.deposit_percent if rules.deposit_percent is not None else tour.deposit_percentage
    deposit = percent_of(total, percent)
    if rules.deposit_minimum is not None:
        deposit = max(deposit, rules.deposit_minimum)
    return min(deposit, total)


def calculate_price(request: PriceRequest) -> PriceBreakdown:
    """
    Compute the itemized price for ``request``.

    Group and early-bird discounts are each a percentage of the same
    pre-fee subtotal and are summed, never compounded. The service fee is
    charged on the discounted subtotal.
    """
    tour, rules, party = request.tour, request.rules, request.party

    adult_amount = tour.base_price * party.adults
    child_amount = child_unit_price(tour, rules) * party.children
    infant_amount = infant_unit_price(tour, rules) * party.infants
    base_amount = adult_amount + child_amount + infant_amount

    accommodation_amount = sum(line.price_per_night for line in request.accommodations)
    activities_amount = sum(_addon_amount(addon, party) for addon in request.addons)
    subtotal = base_amount + accommodation_amount + activities_amount

    group_discount = 0
    if group_discount_applies(party, rules):
        group_discount = percent_of(subtotal, rules.group_discount_percent)

    early_bird_discount = 0
    if early_bird_applies(request.start_date, request.booked_on, rules):
        early_bird_discount = percent_of(subtotal, rules.early_bird_percent)

    discount_amount = min(group_discount + early_bird_discount, subtotal)
    discounted = subtotal - discount_amount

    tax_amount = percent_of(discounted, rules.service_fee_percent) + (rules.service_fee_fixed or 0)
    total_amount = discounted + tax_amount

    deposit_amount = deposit_for(total_amount, tour, rules)

    return PriceBreakdown(
        currency=tour.currency,
        adult_amount=adult_amount,
        child_amount=child_amount,
        infant_amount=infant_amount,
        base_amount=base_amount,
        accommodation_amount=accommodation_amount,
        activities_amount=activities_amount,
        subtotal=subtotal,
        group_discount_amount=group_discount,
        early_bird_discount_amount=early_bird_discount,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        total_amount=total_amount,
        deposit_amount=deposit_amount,
        balance_amount=total_amount - deposit_amount,
    )
