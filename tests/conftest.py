import pytest

from finance_tracker.core.ingest import PdfText


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeCompletionClient:
    """Answers prompts through `handler(prompt)`; records every prompt it saw."""

    def __init__(self, handler):
        self._handler = handler
        self.prompts = []

    async def complete(self, prompt, *, temperature=0.1, max_tokens=1000, json_response=True):
        self.prompts.append(prompt)
        result = self._handler(prompt)
        if isinstance(result, Exception):
            raise result
        return result


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def text_pdf(data):
    """Stand-in for the PDF reader: the test files hold plain text."""
    return PdfText(text=data.decode("utf-8"), page_count=1)


STATEMENT_TEXT = (
    "First National Bank - Account Statement\n"
    "Account Number: 0000-1234   Statement Period: 03/01/2024 - 03/31/2024\n"
    "Beginning Balance $500.00\n"
    "Date Description Amount\n"
    "03/14/2024 STARBUCKS #4521 -$6.75\n"
    "Ending Balance $493.25\n"
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def statement_text():
    return STATEMENT_TEXT
