#!/usr/bin/env python3
"""Startup checks for environment and dependencies.

Reports missing env vars, an unusable upload directory, an unknown Vertex
region and missing Python packages before the service is started.

It exits non-zero when run with `raise_on_error=True` inside CI or local checks.
"""
import importlib
import os
import sys
import tempfile
from pathlib import Path

from dotenv import load_dotenv

from env_utils import project_id_from_env

load_dotenv()

SUPPORTED_VERTEX_REGIONS = {
    "australia-southeast1", "asia-east1", "asia-northeast1", "asia-south1", "asia-southeast1",
    "europe-north1", "europe-southwest1", "europe-west1", "europe-west2", "europe-west3",
    "europe-west4", "europe-west6", "europe-west8", "europe-west9", "me-central1",
    "northamerica-northeast1", "southamerica-east1", "us-central1", "us-east1", "us-east4",
    "us-east5", "us-south1", "us-west1", "us-west4",
}

REQUIRED_MODULES = [
    ("fastapi", "fastapi"),
    ("pydantic", "pydantic"),
    ("pypdf", "pypdf"),
    ("dateutil", "python-dateutil"),
    ("multipart", "python-multipart"),
    ("vertexai", "google-cloud-aiplatform"),
]


def _module_available(name: str) -> bool:
    try:
        importlib.import_module(name)
        return True
    except Exception:
        return False


def _upload_dir_writable(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path):
            pass
        return True
    except OSError:
        return False


def run_checks(raise_on_error: bool = True):
    errors = []
    warnings = []

    if not project_id_from_env():
        warnings.append("GCP_PROJECT_ID not set: PDF statements will be parsed with pattern matching only")

    cred = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if cred:
        cred = os.path.abspath(cred.strip())
        if not os.path.isfile(cred):
            errors.append(f"GOOGLE_APPLICATION_CREDENTIALS file not found: {cred}")

    region = os.getenv("GCP_LOCATION")
    if region:
        r = region.strip().strip("'\"").strip()
        if r not in SUPPORTED_VERTEX_REGIONS:
            warnings.append(f"GCP_LOCATION {r!r} not in the known Vertex AI regions list")

    upload_dir = Path(os.getenv("UPLOAD_DIR") or Path.cwd() / "uploads")
    if not _upload_dir_writable(upload_dir):
        errors.append(f"Upload directory is not writable: {upload_dir}")

    for mod, pkg in REQUIRED_MODULES:
        if not _module_available(mod):
            errors.append(f"Missing Python module: {mod} (install package: {pkg})")

    report = {"errors": errors, "warnings": warnings}
    if errors and raise_on_error:
        msg = "Startup checks failed:\n" + "\n".join(errors + warnings)
        raise SystemExit(msg)
    return report


def main():
    report = run_checks(raise_on_error=False)
    print("STARTUP CHECKS:")
    print("Errors:", report.get("errors"))
    print("Warnings:", report.get("warnings"))
    if report.get("errors"):
        missing_pkgs = []
        for err in report.get("errors", []):
            if "install package:" in err:
                missing_pkgs.append(err.split("install package:")[-1].strip().rstrip(")"))

        if missing_pkgs:
            print("\nSuggested fix:")
            print("pip install " + " ".join(sorted(set(missing_pkgs))))

        sys.exit(2)


if __name__ == "__main__":
    main()
