"""
LLM-assisted statement extraction.

Two passes over one document:

1. Format detection on the first few thousand characters, producing a
   StatementFormatProfile.
2. Transaction extraction over fixed-size chunks of the full text, one chunk
   at a time with a pause between chunks so the provider's per-minute limit
   is respected. Each chunk is retried with exponential backoff; a chunk that
   keeps failing is skipped and the rest of the document still runs.

Model output is treated as untrusted text. Items that do not fit the
expected shape are dropped one by one.
"""
import asyncio
import json
import logging

from pydantic import ValidationError

from .categories import FIXED_CATEGORIES, normalize_category
from .dates import parse_statement_date
from .errors import RateLimitExceeded, StatementProcessingError
from .llm import load_json_object, load_json_payload
from .rate_limiter import DEFAULT_WINDOW_SECONDS, PDF_PROCESSING, RATE_LIMITS
from .retry import exponential_backoff, with_retry
from .schemas import AITransaction, ChunkResponse, ExtractedTransaction, StatementFormatProfile

LOGGER = logging.getLogger("finance_tracker.ai_extractor")

FORMAT_SAMPLE_CHARS = 3000
CHUNK_SIZE = 3000
CHUNK_DELAY_SECONDS = 10.0
MAX_CHUNK_ATTEMPTS = 3

FORMAT_PROMPT = """Analyze this bank statement text and determine the format and structure:

{sample}

Identify:
1. Which bank or financial institution issued this statement
2. The date format used in transactions
3. The general structure of transaction entries
4. Where transaction amounts appear and if they use special formatting
5. How the statement distinguishes between deposits and withdrawals

Return your analysis as a JSON object:
{{
  "bankName": "Name of bank",
  "dateFormat": "Description of date format (e.g., MM/DD/YYYY)",
  "structure": "Description of how transactions are structured",
  "amountFormat": "Description of how amounts are formatted",
  "transactionType": "How deposits vs withdrawals are indicated"
}}
"""

EXTRACT_PROMPT = """You are an expert financial data processor. Extract the financial transactions from this part of a bank statement.

Bank: {bank_name}
Date format: {date_format}
Transaction structure: {structure}
Amount format: {amount_format}
Deposits vs withdrawals: {transaction_type}

BANK STATEMENT TEXT (part {index} of {total}):
{chunk}

Return a JSON object of this exact shape:
{{
  "transactions": [
    {{
      "date": "The transaction date as printed",
      "merchant": "The merchant name or description",
      "amount": 123.45,
      "isDeposit": false,
      "category": "One of the categories below"
    }}
  ]
}}

Categories (choose exactly one): {categories}

Rules:
- Only extract ACTUAL transactions, never summaries, totals or balances
- "amount" is a bare positive number without currency symbols
- "isDeposit" is true for income or deposits, false for spending or withdrawals
- Skip any line you are unsure about
- Return {{"transactions": []}} if this part holds no transactions
"""


def split_into_chunks(text, size=CHUNK_SIZE):
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [text[start : start + size] for start in range(0, len(text), size)]


def parse_format_profile(response_text):
    """Profile from the detection response; an empty profile if it is unusable."""
    try:
        return StatementFormatProfile.model_validate(load_json_object(response_text))
    except (ValueError, ValidationError) as exc:
        LOGGER.warning("Could not parse statement format profile, continuing without it: %s", exc)
        return StatementFormatProfile()


def parse_chunk_transactions(response_text):
    """
    Items from one extraction response.

    Raises ValueError when the response as a whole is malformed so that the
    caller can retry; individual bad items are only logged and dropped.
    """
    data = load_json_payload(response_text)
    if isinstance(data, list):
        data = {"transactions": data}
    if not isinstance(data, dict) or "transactions" not in data:
        raise ValueError("response has no 'transactions' array")
    try:
        response = ChunkResponse.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"malformed 'transactions' array: {exc}") from exc

    items = []
    for raw in response.transactions:
        try:
            items.append(AITransaction.model_validate(raw))
        except ValidationError as exc:
            LOGGER.warning("Dropping malformed transaction %s: %s", json.dumps(raw, default=str)[:200], exc.errors()[0].get("msg"))
    return items


def deduplicate(items):
    """First occurrence of each (date, amount, merchant) wins."""
    seen = set()
    unique = []
    for item in items:
        key = (item.date, item.amount, item.merchant)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def normalize_transaction(item, user_id):
    """ExtractedTransaction for one model item, or None if it cannot be used."""
    if item.amount == 0:
        LOGGER.debug("Dropping zero-amount transaction for %r", item.merchant)
        return None
    amount = abs(item.amount) if item.is_deposit else -abs(item.amount)
    try:
        return ExtractedTransaction(
            date=parse_statement_date(item.date),
            raw_date=item.date,
            merchant=item.merchant,
            amount=amount,
            category=normalize_category(item.category),
            description=item.merchant,
            user_id=user_id,
            source="ai",
        )
    except ValidationError as exc:
        LOGGER.warning("Dropping transaction %r: %s", item.merchant, exc.errors()[0].get("msg"))
        return None


class AIStatementExtractor:
    def __init__(
        self,
        client,
        rate_limiter,
        *,
        rate_limit=RATE_LIMITS[PDF_PROCESSING],
        window_seconds=DEFAULT_WINDOW_SECONDS,
        chunk_size=CHUNK_SIZE,
        chunk_delay_seconds=CHUNK_DELAY_SECONDS,
        max_attempts=MAX_CHUNK_ATTEMPTS,
        backoff=None,
        sleep=asyncio.sleep,
    ):
        self.client = client
        self.rate_limiter = rate_limiter
        self.rate_limit = rate_limit
        self.window_seconds = window_seconds
        self.chunk_size = chunk_size
        self.chunk_delay_seconds = chunk_delay_seconds
        self.max_attempts = max_attempts
        self.backoff = backoff or exponential_backoff(base_seconds=2.0)
        self._sleep = sleep

    async def detect_format(self, text):
        prompt = FORMAT_PROMPT.format(sample=text[:FORMAT_SAMPLE_CHARS])
        try:
            response = await self.client.complete(prompt, temperature=0.1, max_tokens=1000)
        except Exception as exc:
            raise StatementProcessingError(f"Format detection failed: {exc}") from exc
        return parse_format_profile(response)

    def _extraction_prompt(self, chunk, profile, index, total):
        return EXTRACT_PROMPT.format(
            bank_name=profile.bank_name or "Unknown bank",
            date_format=profile.date_format or "Various formats",
            structure=profile.structure or "Standard format",
            amount_format=profile.amount_format or "Unknown",
            transaction_type=profile.transaction_type or "Unknown",
            index=index,
            total=total,
            chunk=chunk,
            categories=", ".join(FIXED_CATEGORIES),
        )

    async def _extract_chunk(self, chunk, profile, index, total):
        prompt = self._extraction_prompt(chunk, profile, index, total)

        async def attempt():
            response = await self.client.complete(prompt, temperature=0.1, max_tokens=2500)
            return parse_chunk_transactions(response)

        return await with_retry(
            attempt,
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            sleep=self._sleep,
            label=f"chunk {index}/{total}",
        )

    async def extract(self, text, user_id):
        if not self.rate_limiter.can_proceed(PDF_PROCESSING, self.rate_limit, self.window_seconds):
            LOGGER.warning("Rate limit exceeded for PDF processing")
            raise RateLimitExceeded(
                "AI PDF processing rate limit reached. Please try again later or use manual transaction entry.",
                key=PDF_PROCESSING,
                remaining=0,
                limit=self.rate_limit,
            )

        profile = await self.detect_format(text)
        LOGGER.info("Detected statement format: bank=%s date_format=%s", profile.bank_name, profile.date_format)

        chunks = split_into_chunks(text, self.chunk_size)
        collected = []
        failed = 0
        for index, chunk in enumerate(chunks, start=1):
            if index > 1 and self.chunk_delay_seconds > 0:
                await self._sleep(self.chunk_delay_seconds)
            try:
                items = await self._extract_chunk(chunk, profile, index, len(chunks))
            except Exception:
                failed += 1
                LOGGER.exception("Giving up on chunk %d/%d", index, len(chunks))
                continue
            LOGGER.info("Chunk %d/%d yielded %d transactions", index, len(chunks), len(items))
            collected.extend(items)

        if chunks and failed == len(chunks):
            raise StatementProcessingError(f"All {failed} chunks failed AI extraction")

        unique = deduplicate(collected)
        if len(unique) < len(collected):
            LOGGER.info("Removed %d duplicate transactions", len(collected) - len(unique))

        transactions = []
        for item in unique:
            normalized = normalize_transaction(item, user_id)
            if normalized is not None:
                transactions.append(normalized)
        return transactions
