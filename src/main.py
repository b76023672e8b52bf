"""Entry point for the patient search MCP server.

Usage: python src/main.py [PATIENTS_JSON]

The optional argument overrides PATIENT_SEARCH_PATIENTS.
"""
import os
import sys
from pathlib import Path

# Add project root to Python path for absolute imports
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import asyncio
import locale


def run() -> None:
    """Start the stdio server, optionally pointing it at a patients file."""
    if len(sys.argv) > 1:
        os.environ["PATIENT_SEARCH_PATIENTS"] = str(Path(sys.argv[1]).expanduser())

    # Name ordering follows the user's collation
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as e:
        print(f"[Main] Using default collation: {e}", file=sys.stderr)

    # Imported late so the config singleton sees the override
    from src.server import main
    asyncio.run(main())


if __name__ == "__main__":
    run()
