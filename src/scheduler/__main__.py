"""
Entry point for running as module: python -m src.scheduler
"""

# Load environment variables BEFORE reading settings
from dotenv import load_dotenv
load_dotenv()

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
