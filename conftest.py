"""Root conftest.py: ensures the local jsonfixtures package takes precedence over any installed version."""

from __future__ import annotations

import sys
from pathlib import Path

# Insert the src directory at the front of sys.path so that
# `import jsonfixtures` always resolves to the local source tree,
# even if an older jsonfixtures is installed in the environment.
_src_root = str(Path(__file__).parent / "src")
if _src_root not in sys.path:
    sys.path.insert(0, _src_root)

pytest_plugins = ["pytester", "jsonfixtures.pytest_plugin"]
