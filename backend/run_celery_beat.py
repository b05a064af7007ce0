#!/usr/bin/env python3
# backend/run_celery_beat.py
"""
Development Celery beat runner.

Schedules session reconciliation and the cancelled-reservation sweep.
"""
from pathlib import Path
import os
import subprocess
import sys

# Add backend to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

if __name__ == "__main__":
    print("Starting Celery beat for reconciliation")

    cmd = [sys.executable, "-m", "celery", "-A", "cafeslot.tasks.celery_app", "beat", "--loglevel=info"]

    subprocess.run(cmd)
