"""
Regex fallback for statements the AI path could not handle.

Recall is low on layouts that match neither template; the AI path is always
preferred when it is available.
"""
import logging
import math
import re

from pydantic import ValidationError

from .categories import KEYWORD_CATEGORIES, MISCELLANEOUS
from .dates import parse_statement_date
from .schemas import ExtractedTransaction

LOGGER = logging.getLogger("finance_tracker.patterns")

# Starts and ends on a non-blank so runs of spaces only match the separators.
_DESCRIPTION = r"[A-Za-z0-9.,'&#*-](?:[A-Za-z0-9 \t.,'&#*-]*?[A-Za-z0-9.,'&#*-])?"
_AMOUNT = r"-?\$?\d[\d,]*\.\d{2}(?!\d)"

# Tried in order; the first one that yields anything is used on its own.
STATEMENT_PATTERNS = [
    # 03/14/2024  STARBUCKS #4521  -$6.75
    re.compile(
        rf"(?<![\d/])(?P<date>\d{{1,2}}/\d{{1,2}}/\d{{2,4}})[ \t]+"
        rf"(?P<description>{_DESCRIPTION})[ \t]+(?P<amount>{_AMOUNT})"
    ),
    # Credit card: transaction date, posting date, description, amount.
    re.compile(
        rf"(?<![\d/])(?P<trans_date>\d{{1,2}}/\d{{1,2}})[ \t]+(?P<date>\d{{1,2}}/\d{{1,2}})(?![\d/])[ \t]+"
        rf"(?P<description>{_DESCRIPTION})[ \t]+(?P<amount>{_AMOUNT})"
    ),
]

_MERCHANT_KEYWORD_PREFIX = 10


def infer_merchant_and_category(description):
    """
    Guess (merchant, category) from a statement description.

    The merchant defaults to the first two words. When a category keyword
    sits near the start of the description the merchant runs up to the end
    of that keyword instead.
    """
    description = description or ""
    words = description.split()
    merchant = " ".join(words[:2]) if len(words) > 2 else description
    category = MISCELLANEOUS

    lowered = description.lower()
    for candidate, keywords in KEYWORD_CATEGORIES.items():
        for keyword in keywords:
            index = lowered.find(keyword)
            if index < 0:
                continue
            if index < _MERCHANT_KEYWORD_PREFIX:
                merchant = description[: index + len(keyword)]
            return merchant, candidate
    return merchant, category


def _parse_amount(value):
    try:
        amount = float(value.replace("$", "").replace(",", ""))
    except ValueError:
        return None
    if math.isnan(amount):
        return None
    return amount


def _transactions_for(pattern, text, user_id):
    transactions = []
    for match in pattern.finditer(text):
        description = " ".join(match.group("description").split())
        amount = _parse_amount(match.group("amount"))
        if amount is None:
            LOGGER.debug("Skipping line with unparseable amount: %r", match.group(0))
            continue

        merchant, category = infer_merchant_and_category(description)
        raw_date = match.group("date")
        try:
            transactions.append(
                ExtractedTransaction(
                    date=parse_statement_date(raw_date),
                    raw_date=raw_date,
                    merchant=merchant.strip() or description,
                    amount=amount,
                    category=category,
                    description=description,
                    user_id=user_id,
                    source="pattern",
                )
            )
        except ValidationError as exc:
            LOGGER.warning("Dropping pattern match %r: %s", match.group(0), exc.errors()[0].get("msg"))
    return transactions


def extract_by_pattern(text, user_id):
    for index, pattern in enumerate(STATEMENT_PATTERNS):
        transactions = _transactions_for(pattern, text or "", user_id)
        if transactions:
            LOGGER.info(f"Pattern {index} matched {len(transactions)} transactions")
            return transactions
    LOGGER.info("No statement pattern matched")
    return []
