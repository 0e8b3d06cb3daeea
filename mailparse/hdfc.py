"""
HDFC Bank alert parser.

Understands four email shapes:
- UPI debits ("... debited from account **1234 to VPA x@y NAME on 15-05-24")
- credit/debit card spends ("... Credit Card ending 4321 towards MERCHANT on ...")
- NEFT credits ("... credited to your account ... by NEFT from EMPLOYER")
- labelled alerts ("Amount: ... / Merchant: ... / Date: ...")
plus statement-ready emails carrying a statement period and total due.
"""
from typing import List, Optional

from mailparse.base import EmailParser
from mailparse.records import EmailMessage, ParsedTransaction, ParsedStatement
from mailparse.regex_constants import (
    AMOUNT_PATTERN,
    LABELLED_AMOUNT_PATTERN,
    CREDIT_PATTERN,
    UPI_VPA_PATTERN,
    CARD_ENDING_PATTERN,
    CARD_MERCHANT_PATTERN,
    NEFT_CREDIT_PATTERN,
    MERCHANT_FIELD_PATTERN,
    AT_MERCHANT_PATTERN,
    DATE_FIELD_PATTERN,
    ON_DATE_PATTERN,
    HDFC_STATEMENT_PERIOD_PATTERN,
    HDFC_TOTAL_DUE_PATTERN,
    HDFC_MINIMUM_DUE_PATTERN,
    DUE_DATE_PATTERN,
)
from mailparse.utils import normalize_merchant, normalize_whitespace, parse_amount, parse_date


class HdfcAlertParser(EmailParser):
    issuer = "HDFC"

    def can_parse(self, email: EmailMessage) -> bool:
        sender = email.from_address.lower()
        subject = email.subject.lower()
        return "hdfcbank.com" in sender or "alerts@hdfcbank" in sender or "hdfc" in subject

    def parse_transactions(self, email: EmailMessage) -> List[ParsedTransaction]:
        text = email.body_text or ""
        transaction_date = self._extract_date(text) or email.received_at
        currency = "INR"

        # UPI debit to a VPA
        vpa_match = UPI_VPA_PATTERN.search(text)
        amount = self._extract_amount(text)
        if vpa_match and amount:
            vpa = vpa_match.group(1)
            merchant = normalize_merchant(vpa_match.group(2)) or vpa
            return [self.build_transaction(
                email, merchant, amount, currency, transaction_date,
                transaction_type="debited", transaction_mode="upi", vpa=vpa,
            )]

        # Card spend
        card_match = CARD_ENDING_PATTERN.search(text)
        card_merchant = CARD_MERCHANT_PATTERN.search(text) or AT_MERCHANT_PATTERN.search(text)
        if card_match and card_merchant and amount:
            mode = "credit_card" if card_match.group(1).lower() == "credit" else "debit_card"
            return [self.build_transaction(
                email, card_merchant.group(1).strip(), amount, currency, transaction_date,
                transaction_type="debited", transaction_mode=mode, card_last4=card_match.group(2),
            )]

        # NEFT credit
        neft_match = NEFT_CREDIT_PATTERN.search(text)
        if neft_match and amount and CREDIT_PATTERN.search(text):
            return [self.build_transaction(
                email, neft_match.group(1).strip(), amount, currency, transaction_date,
                transaction_type="credited", transaction_mode="neft",
            )]

        # Labelled alert
        merchant = self._extract_merchant(text)
        if amount and merchant:
            return [self.build_transaction(email, merchant, amount, currency, transaction_date)]

        return []

    def parse_statement(self, email: EmailMessage) -> Optional[ParsedStatement]:
        text = email.body_text or ""
        period = HDFC_STATEMENT_PERIOD_PATTERN.search(text)
        total_match = HDFC_TOTAL_DUE_PATTERN.search(text)
        if not period or not total_match:
            return None

        total_due = parse_amount(total_match.group(1))
        period_start = parse_date(period.group(1))
        period_end = parse_date(period.group(2))
        if total_due is None or period_start is None or period_end is None:
            return None

        minimum_match = HDFC_MINIMUM_DUE_PATTERN.search(text)
        due_date_match = DUE_DATE_PATTERN.search(text)
        due_date = parse_date(due_date_match.group(1)) if due_date_match else None
        return self.build_statement(
            email,
            period_start.date(),
            period_end.date(),
            total_due,
            "INR",
            minimum_due=parse_amount(minimum_match.group(1)) if minimum_match else None,
            due_date=due_date.date() if due_date else None,
        )

    def _extract_amount(self, text: str):
        match = LABELLED_AMOUNT_PATTERN.search(text) or AMOUNT_PATTERN.search(text)
        return parse_amount(match.group(1)) if match else None

    def _extract_merchant(self, text: str) -> Optional[str]:
        for pattern in (MERCHANT_FIELD_PATTERN, AT_MERCHANT_PATTERN):
            match = pattern.search(text)
            if match and match.group(1).strip():
                return normalize_whitespace(match.group(1))
        return None

    def _extract_date(self, text: str):
        match = DATE_FIELD_PATTERN.search(text) or ON_DATE_PATTERN.search(text)
        return parse_date(match.group(1)) if match else None
