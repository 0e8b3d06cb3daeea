import re

# Amounts: "Rs.1,499.00", "INR 250", "₹ 12,345.50"
AMOUNT_PATTERN = re.compile(r"(?:Rs\.?|INR|₹)\s*([0-9][0-9,]*(?:\.[0-9]{1,2})?)", re.IGNORECASE)
LABELLED_AMOUNT_PATTERN = re.compile(
    r"(?:amount|amt)\s*(?:debited|spent|paid)?\s*[:\-]\s*(?:Rs\.?|INR|₹)?\s*([\d,]+(?:\.\d{1,2})?)",
    re.IGNORECASE,
)
USD_AMOUNT_PATTERN = re.compile(r"amount:\s*\$?\s*([\d,]+(?:\.\d{1,2})?)", re.IGNORECASE)

DEBIT_PATTERN = re.compile(r"\bdebited\b|\bspent\b|\bwithdrawn\b", re.IGNORECASE)
CREDIT_PATTERN = re.compile(r"\bcredited\b|\bdeposit(?:ed)?\b|\brefund\b", re.IGNORECASE)

# HDFC UPI: "... debited from account **1234 to VPA swiggy@icici SWIGGY on 15-05-24"
UPI_VPA_PATTERN = re.compile(
    r"\bto\s+VPA\s+([\w.\-]+@[\w.\-]+)\s*([A-Za-z0-9 &._-]*?)\s+on\s+", re.IGNORECASE
)
UPI_PATTERN = re.compile(r"\bUPI\b", re.IGNORECASE)

# HDFC card spend: "... HDFC Bank Credit Card ending 4321 towards AMAZON PAY INDIA on ..."
CARD_ENDING_PATTERN = re.compile(
    r"(credit|debit)\s+card\s+(?:ending|xx|no\.?)\s*(?:with\s+)?(\d{4})", re.IGNORECASE
)
CARD_MERCHANT_PATTERN = re.compile(r"\btowards\s+([A-Za-z0-9 &._*-]+?)\s+on\s+", re.IGNORECASE)

# NEFT credit: "... credited to your account **1234 by NEFT from ACME TECHNOLOGIES SALARY"
NEFT_CREDIT_PATTERN = re.compile(
    r"by\s+NEFT\s+(?:transfer\s+)?from\s+([A-Za-z0-9 &._-]+)", re.IGNORECASE
)

# Labelled fields used by both plain-text alert formats
MERCHANT_FIELD_PATTERN = re.compile(r"merchant\s*[:\-]\s*(.+)", re.IGNORECASE)
AT_MERCHANT_PATTERN = re.compile(r"\bat\s+([A-Za-z0-9 &._-]+)", re.IGNORECASE)
DATE_FIELD_PATTERN = re.compile(r"\bdate\s*[:\-]\s*(.+)", re.IGNORECASE)
ON_DATE_PATTERN = re.compile(
    r"\bon\s+(\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\d{1,2}\s+[A-Za-z]{3,9},?\s+\d{4}|\d{4}-\d{2}-\d{2})",
    re.IGNORECASE,
)

# Statements
HDFC_STATEMENT_PERIOD_PATTERN = re.compile(r"statement\s*period\s*[:\-]\s*(.+?)\s+to\s+(.+)", re.IGNORECASE)
HDFC_TOTAL_DUE_PATTERN = re.compile(
    r"total\s*(?:amount\s*)?due\s*[:\-]\s*(?:Rs\.?|INR|₹)?\s*([\d,]+(?:\.\d{1,2})?)", re.IGNORECASE
)
HDFC_MINIMUM_DUE_PATTERN = re.compile(
    r"minimum\s*(?:amount\s*)?due\s*[:\-]\s*(?:Rs\.?|INR|₹)?\s*([\d,]+(?:\.\d{1,2})?)", re.IGNORECASE
)
DUE_DATE_PATTERN = re.compile(r"(?:payment\s+)?due\s*date\s*[:\-]\s*(.+)", re.IGNORECASE)
CHASE_STATEMENT_PERIOD_PATTERN = re.compile(r"statement\s*period:\s*(.+?)\s+-\s+(.+)", re.IGNORECASE)
CHASE_TOTAL_DUE_PATTERN = re.compile(r"total\s*due:\s*\$?\s*([\d,]+(?:\.\d{1,2})?)", re.IGNORECASE)

DATE_FORMATS = [
    "%Y-%m-%d",
    "%d-%m-%y",
    "%d-%m-%Y",
    "%d/%m/%y",
    "%d/%m/%Y",
    "%d %b %Y",
    "%d %b, %Y",
    "%d %B %Y",
    "%d %B, %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%m/%d/%Y",
]
