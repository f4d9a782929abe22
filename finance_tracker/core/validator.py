MIN_STATEMENT_LENGTH = 100
MIN_KEYWORD_MATCHES = 3

# Substring matches, so "date" also hits "update" and the like.
BANK_STATEMENT_KEYWORDS = (
    "statement",
    "account",
    "balance",
    "transaction",
    "deposit",
    "withdrawal",
    "payment",
    "transfer",
    "credit",
    "debit",
    "beginning balance",
    "ending balance",
    "date",
    "description",
    "amount",
)


def looks_like_bank_statement(text):
    if not text or len(text) < MIN_STATEMENT_LENGTH:
        return False
    lowered = text.lower()
    matches = sum(1 for keyword in BANK_STATEMENT_KEYWORDS if keyword in lowered)
    return matches >= MIN_KEYWORD_MATCHES
