import os
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = BACKEND_ROOT.parent
for candidate in (BACKEND_ROOT, PROJECT_ROOT):
    if str(candidate) not in sys.path:
        sys.path.insert(0, str(candidate))

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("CLUSTER_ID", "test-cluster-id")
os.environ.setdefault("OCM_BASE_URL", "https://ocm.example.local")
os.environ.setdefault("NOTIFICATIONS_NAMESPACE", "openshift-ocm-agent-operator")
os.environ.setdefault("BACKEND_HOST", "0.0.0.0")
os.environ.setdefault("BACKEND_PORT", "8081")
