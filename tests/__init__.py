# Test package: `tests.helpers.models` is imported by name from inside compiled
# expressions, so the repository root must be importable.
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for path in (ROOT, ROOT / "src"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))
