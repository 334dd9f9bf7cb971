from __future__ import annotations

import uvicorn

from lightswitch.settings import load_settings


def main() -> int:
    settings = load_settings()
    print(f"[STARTUP] Serving on {settings.host}:{settings.port}")
    uvicorn.run("lightswitch.main:app", host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
