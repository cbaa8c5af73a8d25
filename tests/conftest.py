"""Shared pytest configuration for the manuscript pipeline."""

from __future__ import annotations

import os
import sys
from pathlib import Path
import sysconfig

ROOT = Path(__file__).resolve().parent.parent
EXTRA_PATHS = [ROOT, ROOT / "libs/python"]
for extra in EXTRA_PATHS:
    sys.path.insert(0, str(extra))

SITE_PACKAGES = Path(sysconfig.get_paths().get("purelib", ""))
if SITE_PACKAGES and str(SITE_PACKAGES) not in sys.path:
    sys.path.append(str(SITE_PACKAGES))

# Some modules build their substrate at import time; keep every suite on the
# in-memory backends and the mock provider regardless of the caller's shell.
EXTERNAL_BACKEND_VARS = (
    "REDIS_URL",
    "DATABASE_URL",
    "B2_ENDPOINT_URL",
    "B2_BUCKET_NAME",
    "LLM_PROVIDER",
    "IMAGE_PROVIDER",
    "MONTHLY_BUDGET_USD",
    "SESSION_SECRET",
    "PIPELINE_ROLE",
)
for name in EXTERNAL_BACKEND_VARS:
    os.environ.pop(name, None)
