"""
Entry point for the Apollo research pipeline.

Run with:
    python main.py research worker
    python main.py --help
"""
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from apollo.cli.main import main

if __name__ == "__main__":
    main()
