from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture()
def project_root(tmp_path: Path) -> Path:
    """Create a small project tree for operation and governor tests."""

    root = tmp_path / "tiny-project"
    (root / "src" / "tiny_app").mkdir(parents=True)
    (root / "src" / "tiny_app" / "calculator.py").write_text(
        textwrap.dedent(
            """
            def add(left, right):
                return left + right


            def subtract(left, right):
                return left - right
            """
        ).lstrip(),
        encoding="utf-8",
    )
    (root / "README.md").write_text("# Tiny project\n\nCalculator helpers.\n", encoding="utf-8")
    (root / "node_modules" / "left-pad").mkdir(parents=True)
    (root / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1;\n", encoding="utf-8")
    return root
