import os
from dataclasses import dataclass
from pathlib import Path

_METADATA_PROJECT_URL = "http://metadata.google.internal/computeMetadata/v1/project/project-id"
_METADATA_HEADERS = {"Metadata-Flavor": "Google"}

DEFAULT_LOCATION = "europe-west1"
DEFAULT_MODEL = "gemini-2.0-flash"


def _normalize_env(value):
    if not value:
        return None
    cleaned = value.strip().strip("'\"")
    return cleaned or None


def _env_float(name, default):
    raw = _normalize_env(os.getenv(name))
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name, default):
    raw = _normalize_env(os.getenv(name))
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name):
    return (_normalize_env(os.getenv(name)) or "").lower() in {"1", "true", "yes", "on"}


def _seed_project_env(project_id):
    if not os.getenv("GCP_PROJECT_ID"):
        os.environ["GCP_PROJECT_ID"] = project_id
    if not os.getenv("GOOGLE_CLOUD_PROJECT"):
        os.environ["GOOGLE_CLOUD_PROJECT"] = project_id


def _project_id_from_metadata(timeout_seconds=0.2):
    # Cloud Run/Compute metadata server fallback.
    try:
        from urllib import request

        req = request.Request(_METADATA_PROJECT_URL, headers=_METADATA_HEADERS)
        with request.urlopen(req, timeout=timeout_seconds) as resp:
            return _normalize_env(resp.read().decode("utf-8"))
    except Exception:
        return None


def project_id_from_env():
    for env_name in ("GCP_PROJECT_ID", "GOOGLE_CLOUD_PROJECT", "GCLOUD_PROJECT"):
        project = _normalize_env(os.getenv(env_name))
        if project:
            return project
    return None


def resolve_gcp_project_id(set_env=True):
    project = project_id_from_env()
    if project:
        if set_env:
            _seed_project_env(project)
        return project

    try:
        import google.auth

        _, project = google.auth.default()
    except Exception:
        project = None

    project = _normalize_env(project)
    if not project:
        project = _project_id_from_metadata()

    if project and set_env:
        _seed_project_env(project)
    return project


@dataclass(frozen=True)
class Settings:
    project_id: str | None
    location: str
    model: str
    upload_dir: Path
    chunk_size: int
    chunk_delay_seconds: float
    rate_window_seconds: float
    ai_enabled: bool


def load_settings():
    """
    Build the service settings from the environment.

    AI extraction is only enabled when a project id is configured explicitly;
    the metadata/ADC lookup in resolve_gcp_project_id is too slow to run on
    every request path.
    """
    project = project_id_from_env()
    return Settings(
        project_id=project,
        location=_normalize_env(os.getenv("GCP_LOCATION")) or DEFAULT_LOCATION,
        model=_normalize_env(os.getenv("PDF_MODEL")) or DEFAULT_MODEL,
        upload_dir=Path(_normalize_env(os.getenv("UPLOAD_DIR")) or Path.cwd() / "uploads"),
        chunk_size=_env_int("PDF_CHUNK_SIZE", 3000),
        chunk_delay_seconds=_env_float("PDF_CHUNK_DELAY_SECONDS", 10.0),
        rate_window_seconds=_env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0),
        ai_enabled=bool(project) and not _env_flag("AI_EXTRACTION_DISABLED"),
    )
