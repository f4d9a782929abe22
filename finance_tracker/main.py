import asyncio
import contextlib
import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from env_utils import load_settings
from finance_tracker.core.ai_extractor import AIStatementExtractor
from finance_tracker.core.categories import FIXED_CATEGORIES
from finance_tracker.core.errors import RateLimitExceeded
from finance_tracker.core.ingest import StatementIngestor
from finance_tracker.core.llm import VertexCompletionClient
from finance_tracker.core.rate_limiter import PDF_PROCESSING, RATE_LIMITS, RateLimiter
from finance_tracker.core.sinks import LoggingNotifier, LoggingTransactionSink, processing_message, save_transactions
from finance_tracker.core.uploads import UploadDirectory

load_dotenv()

logging.basicConfig(level=logging.INFO)
LOGGER = logging.getLogger("finance_tracker")

MAX_UPLOAD_BYTES = 5 * 1024 * 1024
MAX_FILES_PER_BATCH = 10


def build_ingestor(settings):
    rate_limiter = RateLimiter()
    uploads = UploadDirectory(settings.upload_dir)

    ai_extractor = None
    if settings.ai_enabled:
        client = VertexCompletionClient(settings.project_id, settings.location, settings.model)
        ai_extractor = AIStatementExtractor(
            client,
            rate_limiter,
            window_seconds=settings.rate_window_seconds,
            chunk_size=settings.chunk_size,
            chunk_delay_seconds=settings.chunk_delay_seconds,
        )
    else:
        LOGGER.warning("GCP_PROJECT_ID not configured, will use pattern matching only for PDF parsing")

    return StatementIngestor(
        rate_limiter,
        uploads,
        ai_extractor,
        window_seconds=settings.rate_window_seconds,
    )


def _quota_meta(ingestor):
    return {
        "remaining": ingestor.remaining_quota(),
        "total": ingestor.rate_limits[PDF_PROCESSING],
        "window_seconds": ingestor.window_seconds,
        "ai_enabled": ingestor.ai_extractor is not None,
    }


def _is_pdf(upload):
    filename = (upload.filename or "").lower()
    return upload.content_type == "application/pdf" or filename.endswith(".pdf")


async def _read_upload(upload):
    if not _is_pdf(upload):
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="File too large (max 5MB)")
    return data


def create_app(settings=None, ingestor=None, sink=None, notifier=None):
    settings = settings or load_settings()
    ingestor = ingestor or build_ingestor(settings)
    sink = sink or LoggingTransactionSink()
    notifier = notifier or LoggingNotifier()

    @contextlib.asynccontextmanager
    async def lifespan(_app):
        uploads = ingestor.uploads
        uploads.ensure()
        await asyncio.to_thread(uploads.sweep_stale_uploads)
        sweeper = asyncio.create_task(uploads.run_periodic_sweep())
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper

    app = FastAPI(title="Finance Tracker Statement Ingestion", version="1.0.0", lifespan=lifespan)
    app.state.ingestor = ingestor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        LOGGER.info(f"Request: {request.method} {request.url.path}")
        try:
            response = await call_next(request)
            LOGGER.info(f"Response: {response.status_code}")
            return response
        except Exception as e:
            LOGGER.error(f"Request failed: {e}")
            raise

    @app.get("/health")
    def health():
        return {"status": "ok", "ai_enabled": ingestor.ai_extractor is not None}

    @app.get("/categories")
    def list_categories():
        return {"categories": FIXED_CATEGORIES}

    @app.get("/quota")
    def quota():
        return _quota_meta(ingestor)

    @app.post("/ingest/pdf")
    async def ingest_pdf(file: UploadFile = File(...), user_id: str = Form(...)):
        data = await _read_upload(file)
        path = await asyncio.to_thread(ingestor.uploads.save, file.filename, data)

        transactions = await ingestor.extract_from_file(path, user_id)
        if transactions is None:
            raise HTTPException(status_code=422, detail="File does not appear to be a valid bank statement")
        if not transactions:
            notifier.notify_user(
                user_id,
                processing_message(
                    "pdf_processing_error",
                    "Could not extract any transactions from the uploaded PDF",
                    fileCount=1,
                    success=False,
                ),
            )
            raise HTTPException(status_code=422, detail="Could not extract any transactions from the uploaded PDF")

        saved = save_transactions(sink, transactions)
        notifier.notify_user(
            user_id,
            processing_message(
                "pdf_processing_complete",
                f"Successfully processed 1 PDF and extracted {len(saved)} transactions",
                fileCount=1,
                transactionCount=len(saved),
                success=True,
            ),
        )
        return {
            "transactions": [t.model_dump(mode="json") for t in transactions],
            "count": len(transactions),
            "saved": len(saved),
            "_meta": {"aiLimits": _quota_meta(ingestor)},
        }

    @app.post("/ingest/pdf/batch")
    async def ingest_pdf_batch(files: list[UploadFile] = File(...), user_id: str = Form(...)):
        if not files:
            raise HTTPException(status_code=400, detail="No PDF files provided")
        if len(files) > MAX_FILES_PER_BATCH:
            raise HTTPException(status_code=400, detail=f"At most {MAX_FILES_PER_BATCH} files per upload")

        payloads = [(upload.filename, await _read_upload(upload)) for upload in files]
        paths = [await asyncio.to_thread(ingestor.uploads.save, name, data) for name, data in payloads]

        try:
            batch = await ingestor.extract_batch(paths, user_id)
        except RateLimitExceeded as exc:
            for path in paths:
                await asyncio.to_thread(ingestor.uploads.remove, path)
            notifier.notify_user(
                user_id,
                processing_message(
                    "pdf_processing_error",
                    "An error occurred while processing your PDF files",
                    error=str(exc),
                    fileCount=len(paths),
                    success=False,
                    rateLimit={"isLimitError": True, "remaining": exc.remaining, "limit": exc.limit},
                ),
            )
            raise HTTPException(
                status_code=429,
                detail={
                    "message": str(exc),
                    "_meta": {
                        "aiLimits": _quota_meta(ingestor),
                        "rateLimit": {"key": exc.key, "remaining": exc.remaining, "limit": exc.limit},
                    },
                },
            )

        if not batch.transactions:
            notifier.notify_user(
                user_id,
                processing_message(
                    "pdf_processing_error",
                    "Could not extract any transactions from the uploaded PDFs",
                    fileCount=len(paths),
                    failedFiles=batch.failed_files,
                    success=False,
                ),
            )
            raise HTTPException(status_code=422, detail="Could not extract any transactions from the uploaded PDFs")

        saved = save_transactions(sink, batch.transactions)
        message = f"Successfully processed {len(paths)} PDFs and extracted {len(saved)} transactions"
        LOGGER.info(message)
        notifier.notify_user(
            user_id,
            processing_message(
                "pdf_processing_complete",
                message,
                fileCount=len(paths),
                transactionCount=len(saved),
                success=True,
            ),
        )
        return {
            "transactions": [t.model_dump(mode="json") for t in batch.transactions],
            "count": len(batch.transactions),
            "saved": len(saved),
            "failed_files": batch.failed_files,
            "_meta": {"aiLimits": _quota_meta(ingestor)},
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from env_utils import resolve_gcp_project_id

    # Seeds GCP_PROJECT_ID from ADC or the metadata server before uvicorn
    # imports the app module again.
    resolve_gcp_project_id(set_env=True)
    port = int(os.getenv("PORT", "8080"))
    uvicorn.run("finance_tracker.main:app", host="0.0.0.0", port=port, log_level="info")
