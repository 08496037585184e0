"""Field normalization for duplicate comparison.

Every normalizer returns None for absent input so that callers can treat
"missing" and "blank" the same way. All normalizers are idempotent.
"""

import re
from typing import Iterable, Optional

from .models import Address, LineItem

_WHITESPACE_RE = re.compile(r"\s+")
_NON_DIGIT_RE = re.compile(r"\D")
_STREET_PUNCTUATION_RE = re.compile(r"[.,]")


def _collapse(value: Optional[str]) -> Optional[str]:
    """Lowercase, trim and collapse internal whitespace."""
    if value is None:
        return None
    collapsed = _WHITESPACE_RE.sub(" ", value).strip().lower()
    return collapsed or None


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    normalized = email.strip().lower()
    return normalized or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Reduce a phone number to its national digits.

    North American numbers given with the ``1`` country code compare equal to
    the same number without it: ``+1 (212) 555-1234`` -> ``2125551234``.
    """
    if phone is None:
        return None
    digits = _NON_DIGIT_RE.sub("", phone)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits or None


def normalize_street(address1: Optional[str]) -> Optional[str]:
    if address1 is None:
        return None
    return _collapse(_STREET_PUNCTUATION_RE.sub("", address1))


def normalize_address_component(value: Optional[str]) -> Optional[str]:
    return _collapse(value)


def normalize_name(name: Optional[str]) -> Optional[str]:
    return _collapse(name)


def normalize_address(address: Optional[Address]) -> Optional[Address]:
    """Normalize the compared components of a shipping address.

    ``address2`` is carried through unchanged; it does not take part in
    address matching.
    """
    if address is None:
        return None
    return Address(
        address1=normalize_street(address.address1),
        address2=address.address2,
        city=normalize_address_component(address.city),
        province=normalize_address_component(address.province),
        zip=normalize_address_component(address.zip),
        country=normalize_address_component(address.country),
    )


def sku_set(line_items: Iterable[LineItem]) -> frozenset[str]:
    """Distinct SKUs of an order, ignoring quantity and blank SKUs."""
    skus = set()
    for item in line_items:
        if item.sku is None:
            continue
        sku = item.sku.strip()
        if sku:
            skus.add(sku)
    return frozenset(skus)
