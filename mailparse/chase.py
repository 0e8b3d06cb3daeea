from typing import List, Optional

from mailparse.base import EmailParser
from mailparse.records import EmailMessage, ParsedTransaction, ParsedStatement
from mailparse.regex_constants import (
    USD_AMOUNT_PATTERN,
    MERCHANT_FIELD_PATTERN,
    DATE_FIELD_PATTERN,
    CHASE_STATEMENT_PERIOD_PATTERN,
    CHASE_TOTAL_DUE_PATTERN,
    CARD_ENDING_PATTERN,
)
from mailparse.utils import parse_amount, parse_date


class ChaseAlertParser(EmailParser):
    """Chase card purchase alerts ("Amount: $12.50 / Merchant: ... / Date: ...")"""

    issuer = "Chase"

    def can_parse(self, email: EmailMessage) -> bool:
        return "chase.com" in email.from_address.lower()

    def parse_transactions(self, email: EmailMessage) -> List[ParsedTransaction]:
        text = email.body_text or ""
        amount_match = USD_AMOUNT_PATTERN.search(text)
        merchant_match = MERCHANT_FIELD_PATTERN.search(text)
        amount = parse_amount(amount_match.group(1)) if amount_match else None
        if not amount or not merchant_match or not merchant_match.group(1).strip():
            return []

        date_match = DATE_FIELD_PATTERN.search(text)
        transaction_date = (parse_date(date_match.group(1)) if date_match else None) or email.received_at
        card_match = CARD_ENDING_PATTERN.search(text)
        return [self.build_transaction(
            email,
            merchant_match.group(1).strip(),
            amount,
            "USD",
            transaction_date,
            transaction_type="debited",
            transaction_mode="credit_card",
            card_last4=card_match.group(2) if card_match else None,
        )]

    def parse_statement(self, email: EmailMessage) -> Optional[ParsedStatement]:
        text = email.body_text or ""
        period = CHASE_STATEMENT_PERIOD_PATTERN.search(text)
        total_match = CHASE_TOTAL_DUE_PATTERN.search(text)
        if not period or not total_match:
            return None
        total_due = parse_amount(total_match.group(1))
        period_start = parse_date(period.group(1))
        period_end = parse_date(period.group(2))
        if total_due is None or period_start is None or period_end is None:
            return None
        return self.build_statement(email, period_start.date(), period_end.date(), total_due, "USD")
