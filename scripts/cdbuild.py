#!/usr/bin/env python3
"""
Build a Docker image from a local directory with Google Cloud Build.

CLI wrapper for running cdbuild from a checkout without installing it.

Usage:
    python scripts/cdbuild.py --project my-project --name app
    python scripts/cdbuild.py --project my-project --name app:v2 --source ./service
"""

import sys
from pathlib import Path

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from cdbuild.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
