#!/usr/bin/env python3
"""
smoke_test.py — Boot the Classroom Data API locally and verify core endpoints.

Starts uvicorn in a subprocess against a throwaway ledger, waits for it to
be ready, then hits the key endpoints and checks status codes / response
shapes.

Usage:
    python scripts/smoke_test.py

Requirements: httpx (test extra)
"""

import os
import signal
import subprocess
import sys
import tempfile
import time
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parent.parent
BASE_URL = "http://127.0.0.1:8099"
TIMEOUT = 10


def wait_for_server(url: str, max_wait: int = 10) -> bool:
    """Poll server until it responds or timeout."""
    deadline = time.monotonic() + max_wait
    while time.monotonic() < deadline:
        try:
            r = httpx.get(f"{url}/health", timeout=2)
            if r.status_code == 200:
                return True
        except httpx.ConnectError:
            pass
        time.sleep(0.3)
    return False


def check(label: str, ok: bool, detail: str = "") -> int:
    """Print one PASS/FAIL line. Returns 1 on failure."""
    suffix = f"  {detail}" if detail else ""
    print(f"  {label}{suffix}  {'PASS' if ok else 'FAIL'}")
    return 0 if ok else 1


def main() -> None:
    print("=" * 64)
    print("Classroom Data API — Smoke Test")
    print("=" * 64)
    print()

    ledger_dir = tempfile.mkdtemp(prefix="classroom-smoke-")
    env = os.environ.copy()
    env["ENV"] = "dev"
    env["LEDGER_PATH"] = str(Path(ledger_dir) / "opinions.csv")

    proc = subprocess.Popen(
        [
            sys.executable, "-m", "uvicorn",
            "classroom.api:app",
            "--host", "127.0.0.1",
            "--port", "8099",
            "--log-level", "warning",
        ],
        cwd=str(PROJECT_ROOT),
        env=env,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )

    try:
        if not wait_for_server(BASE_URL):
            print("FATAL: Server did not start within 10s", file=sys.stderr)
            proc.terminate()
            proc.wait(5)
            sys.exit(1)

        print(f"  Server is up (ledger: {env['LEDGER_PATH']}). Running checks...\n")
        failures = 0

        r = httpx.get(f"{BASE_URL}/health", timeout=TIMEOUT)
        failures += check("GET /health →", r.status_code == 200, str(r.status_code))

        r = httpx.get(f"{BASE_URL}/ready", timeout=TIMEOUT)
        failures += check(
            "GET /ready →", r.status_code == 200 and r.json().get("ready") is True,
            str(r.status_code),
        )

        r = httpx.get(f"{BASE_URL}/api/opinions", timeout=TIMEOUT)
        failures += check("GET /api/opinions (empty) →", r.json() == [], str(r.status_code))

        r = httpx.post(
            f"{BASE_URL}/api/opinions",
            json={"bestCountry": "Finland", "worstCountry": "Cambodia"},
            timeout=TIMEOUT,
        )
        failures += check("POST /api/opinions →", r.status_code == 200, str(r.status_code))

        r = httpx.post(f"{BASE_URL}/api/opinions", json={"bestCountry": "Finland"}, timeout=TIMEOUT)
        failures += check("POST /api/opinions (missing) →", r.status_code == 400, str(r.status_code))

        r = httpx.get(f"{BASE_URL}/api/opinions", timeout=TIMEOUT)
        failures += check("GET /api/opinions →", len(r.json()) == 1, f"{len(r.json())} record(s)")

        r = httpx.get(f"{BASE_URL}/api/ranking", timeout=TIMEOUT)
        ok = r.status_code == 200 and len(r.json().get("ranking", [])) > 0
        failures += check("GET /api/ranking →", ok, f"best={r.json().get('best')}")

        r = httpx.get(f"{BASE_URL}/api/clock", timeout=TIMEOUT)
        failures += check("GET /api/clock →", r.status_code == 200, f"{r.json().get('count')} clock(s)")

        r = httpx.get(f"{BASE_URL}/api/datasets/pie", timeout=TIMEOUT)
        failures += check("GET /api/datasets/pie →", r.status_code == 404, str(r.status_code))

        r = httpx.get(f"{BASE_URL}/health", timeout=TIMEOUT)
        for header in ("x-content-type-options", "x-frame-options", "referrer-policy", "x-request-id"):
            failures += check(f"header {header}", header in r.headers)

        print()
        if failures > 0:
            print(f"RESULT: {failures} failure(s)")
            sys.exit(1)
        else:
            print("RESULT: ALL PASSED")

    finally:
        proc.send_signal(signal.SIGTERM)
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait()


if __name__ == "__main__":
    main()
