#!/usr/bin/env python3
"""
API entrypoint - serves the rewrite route and the viewer endpoints.
"""

import os
import sys
from pathlib import Path

import dotenv
dotenv.load_dotenv()

sys.path.insert(0, str(Path(__file__).parent.parent))


def main():
    import uvicorn
    from docvault.core.config import validate_config

    issues = validate_config()
    if issues:
        print(f"❌ Configuration error: {issues}")
        return 1

    host = os.getenv("API_HOST", "127.0.0.1")
    port = int(os.getenv("API_PORT", "8000"))
    print(f"🚀 Starting DocVault API on http://{host}:{port}")
    uvicorn.run("docvault.api.main:app", host=host, port=port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
