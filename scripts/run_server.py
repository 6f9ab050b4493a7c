from __future__ import annotations

import argparse
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
for candidate in (REPO_ROOT, REPO_ROOT / "backend"):
    if str(candidate) not in sys.path:
        sys.path.insert(0, str(candidate))


def main() -> None:
    load_dotenv(dotenv_path=REPO_ROOT / ".env", override=False)

    from app.config import get_settings

    settings = get_settings()
    parser = argparse.ArgumentParser(description="Run the Alertmanager webhook receiver")
    parser.add_argument("--host", default=settings.backend_host)
    parser.add_argument("--port", type=int, default=settings.backend_port)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only)")
    args = parser.parse_args()

    uvicorn.run(
        "app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
        app_dir=str(REPO_ROOT / "backend"),
    )


if __name__ == "__main__":
    main()
