import asyncio
import io
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

from pypdf import PdfReader

from .errors import BatchQuotaError, RateLimitExceeded
from .patterns import extract_by_pattern
from .rate_limiter import DEFAULT_WINDOW_SECONDS, PDF_PROCESSING, PDF_PROCESSING_CHECK, RATE_LIMITS
from .validator import looks_like_bank_statement

LOGGER = logging.getLogger("finance_tracker.ingest")


@dataclass
class PdfText:
    text: str
    page_count: int
    metadata: dict = field(default_factory=dict)


@dataclass
class BatchResult:
    transactions: list = field(default_factory=list)
    failed_files: list = field(default_factory=list)


def extract_pdf_text(data):
    reader = PdfReader(io.BytesIO(data))
    text = "\n".join(page.extract_text() or "" for page in reader.pages)
    metadata = {str(key): str(value) for key, value in (reader.metadata or {}).items()}
    return PdfText(text=text, page_count=len(reader.pages), metadata=metadata)


class StatementIngestor:
    """
    Turns uploaded statement PDFs into ExtractedTransaction records.

    Every file is deleted once it has been looked at, whatever the outcome.
    Callers persist the returned records and notify the user themselves.
    """

    def __init__(
        self,
        rate_limiter,
        uploads,
        ai_extractor=None,
        *,
        text_extractor=extract_pdf_text,
        window_seconds=DEFAULT_WINDOW_SECONDS,
        rate_limits=None,
    ):
        self.rate_limiter = rate_limiter
        self.uploads = uploads
        self.ai_extractor = ai_extractor
        self.text_extractor = text_extractor
        self.window_seconds = window_seconds
        self.rate_limits = dict(RATE_LIMITS, **(rate_limits or {}))

    def remaining_quota(self):
        return self.rate_limiter.get_remaining_quota(
            PDF_PROCESSING, self.rate_limits[PDF_PROCESSING], self.window_seconds
        )

    async def _cleanup(self, path):
        await asyncio.to_thread(self.uploads.remove, path)
        await asyncio.to_thread(self.uploads.sweep_stale_uploads)

    async def _extract_text(self, path):
        data = await asyncio.to_thread(Path(path).read_bytes)
        pdf = await asyncio.to_thread(self.text_extractor, data)
        LOGGER.info("Read %s: %d pages, %d characters", Path(path).name, pdf.page_count, len(pdf.text))
        return pdf.text

    async def _try_ai(self, text, user_id):
        if self.ai_extractor is None:
            return []
        try:
            return await self.ai_extractor.extract(text, user_id)
        except RateLimitExceeded as exc:
            LOGGER.warning("AI parsing skipped, falling back to pattern matching: %s", exc)
        except Exception:
            LOGGER.exception("AI parsing failed, falling back to pattern matching")
        return []

    async def _process_file(self, path, user_id):
        """Like extract_from_file, but read/parse failures propagate."""
        try:
            text = await self._extract_text(path)
            if not looks_like_bank_statement(text):
                LOGGER.warning("File %s does not appear to be a valid bank statement", Path(path).name)
                return None

            transactions = await self._try_ai(text, user_id)
            if not transactions:
                transactions = extract_by_pattern(text, user_id)
            LOGGER.info("Extracted %d transactions from %s", len(transactions), Path(path).name)
            return transactions
        finally:
            await self._cleanup(path)

    async def extract_from_file(self, path, user_id):
        """
        Extract transactions from one uploaded PDF.

        Returns None when the file is unreadable or does not look like a bank
        statement, and a possibly empty list otherwise.
        """
        try:
            return await self._process_file(path, user_id)
        except Exception:
            LOGGER.exception("Failed to parse PDF %s", Path(path).name)
            return None

    def _reserve_batch_quota(self, file_count):
        required = math.ceil(file_count / 2)
        limit = self.rate_limits[PDF_PROCESSING_CHECK]
        if self.rate_limiter.can_proceed(PDF_PROCESSING_CHECK, limit, self.window_seconds, cost=required):
            return
        remaining = self.rate_limiter.get_remaining_quota(PDF_PROCESSING_CHECK, limit, self.window_seconds)
        LOGGER.warning("Rate limit insufficient for processing %d PDF files", file_count)
        raise BatchQuotaError(
            f"Rate limit reached. You can only process up to {remaining * 2} files currently. "
            "Please try again later with fewer files or when the rate limit resets.",
            key=PDF_PROCESSING_CHECK,
            remaining=remaining,
            limit=limit,
        )

    async def extract_batch(self, paths, user_id):
        """
        Extract from several PDFs concurrently.

        Raises BatchQuotaError before touching any file when the quota cannot
        cover the batch. One file failing never stops the others.
        """
        paths = list(paths)
        if len(paths) > 1:
            self._reserve_batch_quota(len(paths))

        results = await asyncio.gather(
            *(self._process_file(path, user_id) for path in paths),
            return_exceptions=True,
        )

        batch = BatchResult()
        for path, result in zip(paths, results):
            if isinstance(result, Exception):
                LOGGER.error("Error processing file %s: %s", path, result, exc_info=result)
                batch.failed_files.append(Path(path).name)
            elif isinstance(result, BaseException):
                raise result
            elif result:
                batch.transactions.extend(result)

        if batch.failed_files:
            LOGGER.warning(
                "Failed to process %d files: %s", len(batch.failed_files), ", ".join(batch.failed_files)
            )
        return batch

    async def extract_from_files(self, paths, user_id):
        batch = await self.extract_batch(paths, user_id)
        return batch.transactions
