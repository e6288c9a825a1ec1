#!/usr/bin/env python3
"""
Upload a payroll CSV to a running service and print the response.

Usage:
    AUTH_SECRET_KEY=... python scripts/test_upload.py payroll.csv [user_id]
"""

import json
import logging
import os
import sys
from pathlib import Path

import requests

# Project root on the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.middleware.auth import TokenIdentityResolver

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def main(argv) -> int:
    if len(argv) < 2:
        logger.error("Usage: test_upload.py <file.csv> [user_id]")
        return 2

    csv_path = Path(argv[1])
    user_id = argv[2] if len(argv) > 2 else "local-user"
    base_url = os.getenv("APP_BASE_URL", "http://localhost:8000")
    resolver = TokenIdentityResolver(os.environ["AUTH_SECRET_KEY"])
    token = resolver.issue_token(user_id)

    with open(csv_path, "rb") as f:
        response = requests.post(
            f"{base_url}/bulk-payroll/upload",
            files={"file": (csv_path.name, f, "text/csv")},
            headers={"Authorization": f"Bearer {token}"},
            timeout=60,
        )

    logger.info(f"Response status: {response.status_code}")
    print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    return 0 if response.ok else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv))
