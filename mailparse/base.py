from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from mailparse.records import EmailMessage, ParsedTransaction, ParsedStatement
from mailparse.utils import build_transaction_hash, deterministic_id, normalize_merchant


class EmailParser(ABC):
    """Capability implemented by every issuer-specific parser"""

    # Short issuer label stored on statements and used in logs
    issuer: str = ""

    @abstractmethod
    def can_parse(self, email: EmailMessage) -> bool:
        """Return True when this parser understands the email's sender/format"""

    @abstractmethod
    def parse_transactions(self, email: EmailMessage) -> List[ParsedTransaction]:
        """Extract zero or more transactions"""

    def parse_statement(self, email: EmailMessage) -> Optional[ParsedStatement]:
        """Extract a statement summary; most alert emails carry none"""
        return None

    def build_transaction(
        self,
        email: EmailMessage,
        merchant_raw: str,
        amount: Decimal,
        currency: str,
        transaction_date: datetime,
        transaction_type: str = "debited",
        transaction_mode: str = "other",
        vpa: Optional[str] = None,
        card_last4: Optional[str] = None,
    ) -> ParsedTransaction:
        """Assemble an uncategorized transaction with its stable identity"""
        dedupe_hash = build_transaction_hash(
            email.user_id,
            email.provider_message_id,
            merchant_raw,
            amount,
            currency,
            transaction_date,
            transaction_type,
            transaction_mode,
        )
        return ParsedTransaction(
            id=deterministic_id(dedupe_hash),
            user_id=email.user_id,
            dedupe_hash=dedupe_hash,
            source_email_id=email.id,
            merchant=normalize_merchant(merchant_raw),
            merchant_raw=merchant_raw,
            amount=amount,
            currency=currency.upper(),
            transaction_date=transaction_date,
            transaction_type=transaction_type,
            transaction_mode=transaction_mode,
            vpa=vpa.lower() if vpa else None,
            card_last4=card_last4,
        )

    def build_statement(
        self,
        email: EmailMessage,
        period_start,
        period_end,
        total_due: Decimal,
        currency: str,
        minimum_due: Optional[Decimal] = None,
        due_date=None,
    ) -> ParsedStatement:
        key = f"{email.user_id}:{self.issuer}:{period_start.isoformat()}:{period_end.isoformat()}"
        return ParsedStatement(
            id=deterministic_id(key),
            user_id=email.user_id,
            issuer=self.issuer,
            period_start=period_start,
            period_end=period_end,
            total_due=total_due,
            currency=currency,
            source_email_id=email.id,
            minimum_due=minimum_due,
            due_date=due_date,
        )
