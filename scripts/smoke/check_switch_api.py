"""
Smoke test: check a running switch server answers and enforces the API key.

Does not move the servo (only GET endpoints are used).

Run:
  SWITCH_API_KEY=... python scripts/smoke/check_switch_api.py
"""

from __future__ import annotations

import os

import httpx


API_BASE = os.getenv("SWITCH_API_BASE", "http://127.0.0.1:8000")


def main() -> int:
    key = (os.getenv("SWITCH_API_KEY") or "").strip()
    try:
        r = httpx.get(f"{API_BASE}/state", timeout=5)
        if r.status_code != 401:
            print(f"[FAIL] /state without key returned {r.status_code}, expected 401")
            return 1
        print("[OK] /state rejects missing key (401)")

        if not key:
            print("[SKIP] SWITCH_API_KEY not set; skipping authenticated checks")
            return 0

        r = httpx.get(f"{API_BASE}/state", headers={"x-api-key": key}, timeout=5)
        if r.status_code != 200:
            print(f"[FAIL] /state returned {r.status_code}: {r.text}")
            return 1
        print(f"[OK] /state: {r.json()}")

        r = httpx.get(f"{API_BASE}/settings", headers={"x-api-key": key}, timeout=5)
        if r.status_code != 200:
            print(f"[FAIL] /settings returned {r.status_code}: {r.text}")
            return 1
        print(f"[OK] /settings: {r.json()}")
        return 0
    except Exception as e:
        print(f"[FAIL] Could not reach API at {API_BASE}: {e}")
        print("Start it with: lightswitch")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
