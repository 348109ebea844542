#!/usr/bin/env python3
"""
Viewer entrypoint - launches the terminal document viewer.
"""

import sys
from pathlib import Path

# Load environment variables from .env file first
import dotenv
dotenv.load_dotenv()

# Add project root to path for imports (docvault/ and tui/ are both in project root)
sys.path.insert(0, str(Path(__file__).parent.parent))


def main():
    try:
        from tui.viewer import main as viewer_main
        viewer_main()
    except ImportError as e:
        print(f"❌ Failed to import viewer: {e}")
        print("   Make sure textual is installed: pip install textual")
        return 1
    except KeyboardInterrupt:
        print("\nℹ️  Viewer interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
