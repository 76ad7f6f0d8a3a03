"""Root conftest: loads .env.test so community_sync.config imports cleanly."""
from __future__ import annotations

import os
from pathlib import Path

_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for raw in _env_test.read_text(encoding="utf-8").splitlines():
        entry = raw.strip()
        if entry and not entry.startswith("#") and "=" in entry:
            name, value = entry.split("=", 1)
            os.environ.setdefault(name.strip(), value.strip().strip('"'))
