"""
Container health check probing the API health endpoint.

Exits 0 only when the API answers and reports a reachable database.
"""

from __future__ import annotations

import json
import os
import sys
from urllib.error import URLError
from urllib.request import urlopen


def main() -> int:
    port = os.getenv("PORT", "8000")
    path = os.getenv("HEALTHCHECK_PATH", "/api/health")
    url = f"http://127.0.0.1:{port}{path}"

    try:
        with urlopen(url, timeout=2) as response:
            if not 200 <= response.status < 400:
                return 1
            payload = json.loads(response.read() or b"{}")
    except (URLError, TimeoutError, ValueError):
        return 1

    database = payload.get("database") if isinstance(payload, dict) else None
    if not isinstance(database, dict) or not database.get("healthy"):
        print("API is up but the database is unreachable", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
