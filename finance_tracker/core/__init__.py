from .ai_extractor import AIStatementExtractor
from .errors import BatchQuotaError, RateLimitExceeded, StatementIngestError, StatementProcessingError
from .ingest import BatchResult, StatementIngestor, extract_pdf_text
from .patterns import extract_by_pattern, infer_merchant_and_category
from .rate_limiter import RATE_LIMITS, RateLimiter
from .schemas import ExtractedTransaction, StatementFormatProfile
from .uploads import UploadDirectory
from .validator import looks_like_bank_statement

__all__ = [
    "AIStatementExtractor",
    "BatchQuotaError",
    "BatchResult",
    "ExtractedTransaction",
    "RATE_LIMITS",
    "RateLimitExceeded",
    "RateLimiter",
    "StatementFormatProfile",
    "StatementIngestError",
    "StatementIngestor",
    "StatementProcessingError",
    "UploadDirectory",
    "extract_by_pattern",
    "extract_pdf_text",
    "infer_merchant_and_category",
    "looks_like_bank_statement",
]
