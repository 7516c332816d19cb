"""Pytest configuration: golden YAML parametrization."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import yaml

DEFAULT_GOLDEN_PATTERN = "golden/*.yaml"


def pytest_configure(config: Any) -> None:
    """Register the golden_test marker."""
    config.addinivalue_line(
        "markers",
        "golden_test(pattern): parameterize test with golden LMC programs matching pattern",
    )


def _iter_marker_patterns(node: Any) -> Iterator[str]:
    """Yield glob patterns from golden_test markers on `node`."""
    for m in node.iter_markers(name="golden_test"):
        yield m.args[0] if m.args else DEFAULT_GOLDEN_PATTERN


def _load_golden(p: Path) -> dict[str, Any]:
    """Load one golden record; a broken file becomes a record the test reports."""
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        return {"__yaml_load_error__": str(e), "__path__": str(p), "__name__": p.name}
    if not isinstance(data, dict):
        return {"__yaml_load_error__": "golden file is not a mapping", "__path__": str(p), "__name__": p.name}
    data.setdefault("__path__", str(p))
    data.setdefault("__name__", p.name)
    return data


def pytest_generate_tests(metafunc: Any) -> None:
    """Parametrize any test taking a `golden` argument with the matching YAML files."""
    if "golden" not in metafunc.fixturenames:
        return

    patterns = list(_iter_marker_patterns(metafunc.definition)) or [DEFAULT_GOLDEN_PATTERN]
    root = Path(metafunc.config.rootpath)

    files: list[Path] = []
    for pat in patterns:
        files.extend(sorted(root.glob(pat)))

    metafunc.parametrize("golden", [_load_golden(p) for p in files], ids=[p.stem for p in files])
