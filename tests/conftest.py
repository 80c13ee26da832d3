"""
conftest.py: adds the project root to sys.path for pytest.
"""
import sys
from pathlib import Path

_ROOT = Path(__file__).resolve().parent.parent   # project root

if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))
