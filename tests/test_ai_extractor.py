import asyncio
import json
from datetime import date

import pytest

from conftest import FakeClock, FakeCompletionClient
from finance_tracker.core.ai_extractor import (
    FORMAT_PROMPT,
    FORMAT_SAMPLE_CHARS,
    AIStatementExtractor,
    deduplicate,
    parse_chunk_transactions,
    parse_format_profile,
    split_into_chunks,
)
from finance_tracker.core.errors import RateLimitExceeded, StatementProcessingError
from finance_tracker.core.rate_limiter import PDF_PROCESSING, RateLimiter

FORMAT_RESPONSE = json.dumps(
    {
        "bankName": "First National Bank",
        "dateFormat": "MM/DD/YYYY",
        "structure": "date description amount",
        "amountFormat": "negative for debits",
        "transactionType": "sign",
    }
)

# 300 characters: three chunks of 100.
DOCUMENT = "".join(f"line {n:03d} ".ljust(20, ".") for n in range(15))


def _transactions(*items):
    return json.dumps({"transactions": list(items)})


def _uber(**overrides):
    item = {"date": "03/14/2024", "merchant": "UBER", "amount": 12.5, "isDeposit": False, "category": "Transportation"}
    item.update(overrides)
    return item


def make_extractor(handler, sleeper, limiter=None, **kwargs):
    client = FakeCompletionClient(handler)
    kwargs.setdefault("chunk_size", 100)
    extractor = AIStatementExtractor(
        client,
        limiter or RateLimiter(clock=FakeClock()),
        sleep=sleeper,
        **kwargs,
    )
    return extractor, client


def _part(prompt):
    for index in (1, 2, 3):
        if f"part {index} of 3" in prompt:
            return index
    return None


def test_split_into_chunks():
    assert split_into_chunks("abcdefg", 3) == ["abc", "def", "g"]
    assert split_into_chunks("", 3) == []
    assert len(DOCUMENT) == 300
    with pytest.raises(ValueError):
        split_into_chunks("abc", 0)


def test_chunk_failure_is_skipped_and_the_rest_is_merged(sleeper):
    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return FORMAT_RESPONSE
        part = _part(prompt)
        if part == 1:
            return _transactions(_uber())
        if part == 2:
            return RuntimeError("model overloaded")
        return _transactions({"date": "03/15/2024", "merchant": "PAYROLL", "amount": 2500, "isDeposit": True, "category": "Income"})

    extractor, client = make_extractor(handler, sleeper)
    transactions = asyncio.run(extractor.extract(DOCUMENT, 9))

    assert [(t.merchant, t.amount) for t in transactions] == [("UBER", -12.5), ("PAYROLL", 2500.0)]
    assert sum(1 for p in client.prompts if _part(p) == 2) == 3
    # Pause before chunk 2, two backoffs inside it, pause before chunk 3.
    assert sleeper.calls == [10.0, 2.0, 4.0, 10.0]


def test_duplicates_across_chunks_are_removed(sleeper):
    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return FORMAT_RESPONSE
        if _part(prompt) == 2:
            return _transactions()
        return _transactions(_uber())

    extractor, _ = make_extractor(handler, sleeper)
    transactions = asyncio.run(extractor.extract(DOCUMENT, 9))

    assert len(transactions) == 1
    tx = transactions[0]
    assert tx.date == date(2024, 3, 14)
    assert tx.category == "Transportation"
    assert tx.source == "ai"
    assert tx.user_id == 9


def test_sign_follows_deposit_flag_and_categories_are_normalized(sleeper):
    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return "```json\n" + FORMAT_RESPONSE + "\n```"
        return _transactions(
            {"date": "03/01/2024", "merchant": "RENT CO", "amount": "-$1,200.00", "isDeposit": False, "category": "Housing and Utilities"},
            {"date": "03/02/2024", "merchant": "REFUND", "amount": -30, "isDeposit": True, "category": "refunds"},
            {"date": "03/03/2024", "merchant": "FREE SAMPLE", "amount": 0, "category": "Shopping"},
            {"merchant": "", "amount": 5},
            "not an object",
        )

    extractor, _ = make_extractor(handler, sleeper, chunk_size=1000)
    transactions = asyncio.run(extractor.extract(DOCUMENT, 1))

    assert [(t.merchant, t.amount, t.category) for t in transactions] == [
        ("RENT CO", -1200.0, "Housing & Utilities"),
        ("REFUND", 30.0, "Miscellaneous"),
    ]
    assert sleeper.calls == []


def test_malformed_chunk_response_is_retried(sleeper):
    replies = iter(["Sorry, I cannot help with that.", _transactions(_uber())])

    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return FORMAT_RESPONSE
        return next(replies)

    extractor, client = make_extractor(handler, sleeper, chunk_size=1000)
    transactions = asyncio.run(extractor.extract(DOCUMENT, 1))

    assert len(transactions) == 1
    assert len(client.prompts) == 3
    assert sleeper.calls == [2.0]


def test_unusable_format_profile_uses_defaults(sleeper):
    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return "I could not tell"
        return _transactions(_uber())

    extractor, client = make_extractor(handler, sleeper, chunk_size=1000)
    asyncio.run(extractor.extract(DOCUMENT, 1))

    assert "Bank: Unknown bank" in client.prompts[1]
    assert "Date format: Various formats" in client.prompts[1]


def test_format_detection_error_is_a_processing_error(sleeper):
    def handler(prompt):
        return ConnectionError("unreachable")

    extractor, _ = make_extractor(handler, sleeper)
    with pytest.raises(StatementProcessingError):
        asyncio.run(extractor.extract(DOCUMENT, 1))


def test_all_chunks_failing_raises(sleeper):
    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return FORMAT_RESPONSE
        return RuntimeError("boom")

    extractor, _ = make_extractor(handler, sleeper)
    with pytest.raises(StatementProcessingError):
        asyncio.run(extractor.extract(DOCUMENT, 1))


def test_rate_limit_is_checked_before_any_model_call(sleeper):
    limiter = RateLimiter(clock=FakeClock())
    limiter.can_proceed(PDF_PROCESSING, 2, 60, cost=2)

    extractor, client = make_extractor(lambda prompt: FORMAT_RESPONSE, sleeper, limiter=limiter, rate_limit=2)
    with pytest.raises(RateLimitExceeded) as excinfo:
        asyncio.run(extractor.extract(DOCUMENT, 1))

    assert client.prompts == []
    assert excinfo.value.remaining == 0
    assert excinfo.value.limit == 2


def test_each_document_consumes_one_unit(sleeper):
    limiter = RateLimiter(clock=FakeClock())

    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return FORMAT_RESPONSE
        return _transactions(_uber())

    extractor, _ = make_extractor(handler, sleeper, limiter=limiter)
    asyncio.run(extractor.extract(DOCUMENT, 1))

    assert limiter.get_remaining_quota(PDF_PROCESSING, 30) == 29


def test_parse_chunk_transactions_accepts_bare_list():
    items = parse_chunk_transactions(json.dumps([_uber()]))
    assert [item.merchant for item in items] == ["UBER"]


def test_parse_chunk_transactions_requires_transactions_key():
    with pytest.raises(ValueError):
        parse_chunk_transactions('{"result": []}')


def test_parse_format_profile():
    profile = parse_format_profile(FORMAT_RESPONSE)
    assert profile.bank_name == "First National Bank"
    assert profile.date_format == "MM/DD/YYYY"
    assert parse_format_profile("garbage").bank_name is None


def test_deduplicate_keeps_first_occurrence():
    items = parse_chunk_transactions(
        _transactions(_uber(category="Transportation"), _uber(category="Shopping"), _uber(amount=13))
    )
    unique = deduplicate(items)
    assert [(i.amount, i.category) for i in unique] == [(12.5, "Transportation"), (13.0, "Transportation")]


def test_null_deposit_flag_counts_as_expense():
    items = parse_chunk_transactions(_transactions(_uber(isDeposit=None)))

    assert [(i.merchant, i.is_deposit) for i in items] == [("UBER", False)]


def test_format_detection_only_sees_the_start_of_the_document(sleeper):
    document = "A" * FORMAT_SAMPLE_CHARS + "TAIL-MARKER"

    def handler(prompt):
        if prompt.startswith("Analyze this bank statement"):
            return FORMAT_RESPONSE
        return _transactions()

    extractor, client = make_extractor(handler, sleeper, chunk_size=10000)
    asyncio.run(extractor.extract(document, 1))

    assert "TAIL-MARKER" not in client.prompts[0]
    assert len(client.prompts[0]) <= len(FORMAT_PROMPT) + FORMAT_SAMPLE_CHARS
    assert "TAIL-MARKER" in client.prompts[1]
