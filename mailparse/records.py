"""
Plain records passed between the mail provider, the parsers and storage.
"""
from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Dict, Any
import uuid


@dataclass
class EmailMessage:
    """A transactional email, either fresh from the provider or re-read from storage"""
    provider_message_id: str
    user_id: uuid.UUID
    from_address: str
    subject: str
    received_at: datetime
    body_text: str = ""
    body_html: Optional[str] = None
    snippet: Optional[str] = None
    provider: str = "gmail"
    category: str = "expenses"
    # Set once the email has been persisted
    id: Optional[uuid.UUID] = None
    processed: bool = False


@dataclass
class ParsedTransaction:
    """Transaction extracted from an email, before or after categorization"""
    id: uuid.UUID
    user_id: uuid.UUID
    dedupe_hash: str
    source_email_id: Optional[uuid.UUID]
    merchant: str
    merchant_raw: str
    amount: Decimal
    currency: str
    transaction_date: datetime
    transaction_type: str = "debited"
    transaction_mode: str = "other"
    vpa: Optional[str] = None
    card_last4: Optional[str] = None
    card_name: Optional[str] = None
    category: str = "uncategorized"
    subcategory: str = "uncategorized"
    confidence: float = 0.0
    categorization_method: str = "heuristic"
    requires_review: bool = True
    category_metadata: Dict[str, Any] = field(default_factory=dict)
    statement_id: Optional[uuid.UUID] = None


@dataclass
class ParsedStatement:
    """Card or account statement summary"""
    id: uuid.UUID
    user_id: uuid.UUID
    issuer: str
    period_start: date
    period_end: date
    total_due: Decimal
    currency: str
    source_email_id: Optional[uuid.UUID] = None
    minimum_due: Optional[Decimal] = None
    due_date: Optional[date] = None
