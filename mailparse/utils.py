"""
Helpers shared by the bundled parsers.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional
import hashlib
import json
import re
import uuid

from mailparse.regex_constants import DATE_FORMATS

TRANSACTION_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "transactions.spendsync")

_WHITESPACE = re.compile(r"\s+")
_TRAILING_PUNCTUATION = re.compile(r"[.,;:]+$")


def normalize_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def normalize_merchant(value: str) -> str:
    """Collapse whitespace and drop trailing punctuation ("SWIGGY." -> "SWIGGY")"""
    return _TRAILING_PUNCTUATION.sub("", normalize_whitespace(value))


def merchant_key(value: str) -> str:
    """Case-insensitive lookup key for merchant rules and history"""
    return normalize_merchant(value).lower()


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """
    Parse a money string such as "1,499.00".

    Returns:
        Positive Decimal rounded to 2 places, or None when unparseable or zero
    """
    if not raw:
        return None
    try:
        amount = Decimal(raw.replace(",", "").strip())
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return amount.quantize(Decimal("0.01"))


def parse_date(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse the date formats seen in bank alerts.

    Returns:
        UTC-aware datetime at midnight, or None if no format matches
    """
    if not raw:
        return None
    candidate = normalize_merchant(raw.split(" at ")[0])
    for fmt in DATE_FORMATS:
        try:
            dt = datetime.strptime(candidate, fmt)
        except ValueError:
            continue
        # two-digit years: assume 2000s
        if dt.year < 100:
            dt = dt.replace(year=dt.year + 2000)
        return dt.replace(tzinfo=timezone.utc)
    return None


def build_transaction_hash(
    user_id,
    provider_message_id: str,
    merchant_raw: str,
    amount: Decimal,
    currency: str,
    transaction_date: datetime,
    transaction_type: str,
    transaction_mode: str,
) -> str:
    """Stable SHA-256 identity of a transaction; re-parsing the same email yields the same hash"""
    payload = json.dumps({
        "userId": str(user_id),
        "sourceMessageId": provider_message_id,
        "merchantRaw": merchant_key(merchant_raw),
        "amount": str(Decimal(amount).quantize(Decimal("0.01"))),
        "currency": currency.upper(),
        "transactionDate": transaction_date.date().isoformat(),
        "transactionType": transaction_type,
        "transactionMode": transaction_mode,
    })
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def deterministic_id(key: str) -> uuid.UUID:
    return uuid.uuid5(TRANSACTION_NAMESPACE, key)
