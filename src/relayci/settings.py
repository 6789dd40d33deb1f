from __future__ import annotations
import os

# Defaults for CLI options; every value can be overridden per run.
WORKERS = int(os.environ.get("RELAYCI_WORKERS", "0")) or None
STEP_TIMEOUT = float(os.environ.get("RELAYCI_STEP_TIMEOUT", "3600"))
RECORD_DIR = os.environ.get("RELAYCI_RECORD_DIR", ".relayci/runs")
DATABASE_URL = os.environ.get("RELAYCI_DATABASE_URL") or None
SECRET_PREFIX = os.environ.get("RELAYCI_SECRET_PREFIX", "RELAYCI_SECRET_")
