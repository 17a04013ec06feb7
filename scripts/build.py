#!/usr/bin/env python
"""Report deployment readiness.

Checks what a deployment needs before it ships:
- The serverless entry point (apps/api/main.py exporting `app` and `handler`)
- Where the standalone port comes from (PORT or the default)
- Whether the client build (STATIC_DIR/index.html) exists

Constraints:
- Never builds the client itself (run the frontend build first)
- Exits 1 in production when the client build is missing; development
  falls back to the dev server or the placeholder page

Usage:
    python scripts/build.py

    # Or against a production build:
    APP_ENV=production STATIC_DIR=dist/public python scripts/build.py
"""

import os
import sys
from pathlib import Path

ENTRY_POINT = Path("apps/api/main.py")


def main():
    repo_root = Path(__file__).resolve().parent.parent
    sys.path.insert(0, str(repo_root / "python"))

    from switchyard.config import HOST, get_settings
    from switchyard.transport import select_transport

    settings = get_settings()

    # 1. Serverless entry point
    entry_point = repo_root / ENTRY_POINT
    if not entry_point.is_file():
        print(f"ERROR: serverless entry point {ENTRY_POINT} not found")
        sys.exit(1)
    print(f"Entry point:  {ENTRY_POINT} (exports app, handler)")

    # 2. Transport and port
    port_source = "PORT" if os.getenv("PORT") else "default"
    print(f"Environment:  {settings.app_env.value}")
    print(f"Transport:    {select_transport(settings).value}")
    print(f"Listener:     {HOST}:{settings.port} ({port_source})")

    # 3. Client build
    static_dir = settings.static_dir
    if not static_dir.is_absolute():
        static_dir = Path.cwd() / static_dir
    index_html = static_dir / "index.html"

    if index_html.is_file():
        print(f"Client build: {index_html}")
    elif settings.is_production:
        print(f"ERROR: client build not found at {index_html}")
        print("Build the client first; production would serve the placeholder page")
        sys.exit(1)
    else:
        print(f"Client build: missing ({index_html}), development serves via the dev server")

    print("✓ Ready")


if __name__ == "__main__":
    main()
