#!/usr/bin/env python3
# backend/run.py
"""
Development API runner.

Uses the local SQLite store unless DATABASE_URL points elsewhere.
"""
import os
from pathlib import Path
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

import uvicorn

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Starting cafeslot API at http://localhost:{port} (docs at /docs)")

    uvicorn.run("cafeslot.main:app", host="0.0.0.0", port=port, reload=True, log_level="info")
