from __future__ import annotations

import os
from pathlib import Path


# Root directory for all artifacts.
# Default: project-local ./artifacts for easier inspection and cleanup.
# Override with env var DOCFORGE_ARTIFACTS_ROOT.
_root_raw = os.environ.get("DOCFORGE_ARTIFACTS_ROOT")
if _root_raw and _root_raw.strip():
    ARTIFACTS_ROOT = Path(_root_raw)
else:
    # docforge_backend/ -> project root
    ARTIFACTS_ROOT = Path(__file__).resolve().parent.parent / "artifacts"
ARTIFACTS_ROOT = ARTIFACTS_ROOT.resolve()

# Maximum artifact age before the sweep reclaims it.
ARTIFACT_TTL_SECONDS = float(os.environ.get("DOCFORGE_ARTIFACT_TTL_SECONDS", str(30 * 60)))

# How often the server scans for expired artifacts.
SWEEP_INTERVAL_SECONDS = float(os.environ.get("DOCFORGE_SWEEP_INTERVAL_SECONDS", str(5 * 60)))

# Grace period between a completed download and deletion of the artifact.
DOWNLOAD_GRACE_SECONDS = float(os.environ.get("DOCFORGE_DOWNLOAD_GRACE_SECONDS", str(5 * 60)))

# Upper bound for streaming one artifact to a client.
TRANSFER_TIMEOUT_SECONDS = float(os.environ.get("DOCFORGE_TRANSFER_TIMEOUT_SECONDS", "120"))
DOWNLOAD_CHUNK_BYTES = 64 * 1024

# Upload limits (per file; the core itself never checks sizes).
MAX_UPLOAD_BYTES = int(os.environ.get("DOCFORGE_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10MB
MAX_MERGE_FILES = int(os.environ.get("DOCFORGE_MAX_MERGE_FILES", "10"))

# Encoder quality for lossy raster targets.
LOSSY_QUALITY = 90

# Text-to-PDF defaults (points, US Letter).
PAGE_WIDTH = 612.0
PAGE_HEIGHT = 792.0
PAGE_MARGIN = 50.0
FONT_SIZE = 12.0
CHAR_WIDTH_FACTOR = 0.5
LINE_HEIGHT_FACTOR = 1.5

LOG_LEVEL = os.environ.get("DOCFORGE_LOG_LEVEL", "INFO").upper()
