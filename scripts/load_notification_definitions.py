from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
for candidate in (REPO_ROOT, REPO_ROOT / "backend"):
    if str(candidate) not in sys.path:
        sys.path.insert(0, str(candidate))

from app.config import DEFAULT_NOTIFICATIONS_NAMESPACE  # noqa: E402
from app.services.notification_definitions_service import apply_notification_definitions  # noqa: E402

DEFAULT_DEFINITIONS_PATH = "config/notification_definitions.yaml"


def resolve_path(base_dir: Path, raw_path: str) -> Path:
    candidate = Path(raw_path)
    return candidate if candidate.is_absolute() else (base_dir / candidate).resolve()


def load_database_url(repo_root: Path) -> str:
    load_dotenv(dotenv_path=repo_root / ".env", override=False)
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise ValueError("DATABASE_URL not found. Create .env from .env.example first.")
    return db_url


def main() -> None:
    parser = argparse.ArgumentParser(description="Load notification templates from YAML into the document store")
    parser.add_argument("--path", default=DEFAULT_DEFINITIONS_PATH, help="Notification definitions YAML file")
    parser.add_argument(
        "--namespace",
        default=os.getenv("NOTIFICATIONS_NAMESPACE", DEFAULT_NOTIFICATIONS_NAMESPACE),
        help="Namespace the definitions are stored under",
    )
    args = parser.parse_args()

    db_url = load_database_url(REPO_ROOT)
    definitions_path = resolve_path(REPO_ROOT, args.path)

    print(f"[DEFINITIONS] Loading {definitions_path}")
    summary = apply_notification_definitions(definitions_path, namespace=args.namespace, database_url=db_url)
    print(
        "[DEFINITIONS] Applied "
        f"{summary['managed_notifications']} managed notification(s) and "
        f"{summary['managed_fleet_notifications']} fleet notification(s) to namespace {summary['namespace']}."
    )


if __name__ == "__main__":
    main()
