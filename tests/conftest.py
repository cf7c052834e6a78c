import logging
from pathlib import Path

import pytest

from log_utils import configure_logging
from rules_loader import load_rules
from scan_engine import ScanEngine
from server import create_app
from settings import Settings


def _write_rule(path: Path, *rules: tuple) -> Path:
    """Write (identifier, marker) pairs as simple string-match rules."""
    path.parent.mkdir(parents=True, exist_ok=True)
    body = []
    for identifier, marker in rules:
        body.append(
            f"rule {identifier}\n{{\n    strings:\n        $m = \"{marker}\"\n    condition:\n        $m\n}}\n"
        )
    path.write_text("\n".join(body))
    return path


@pytest.fixture
def write_rule():
    return _write_rule


@pytest.fixture
def logger() -> logging.Logger:
    return configure_logging(logging.DEBUG)


@pytest.fixture
def rules_dir(tmp_path: Path) -> Path:
    root = tmp_path / "rules"
    _write_rule(root / "root.yar", ("root_rule", "ROOTMARK"))
    _write_rule(root / "alpha" / "a.yar", ("alpha_one", "ALPHA1"), ("alpha_two", "ALPHA2"))
    _write_rule(root / "alpha" / "beta" / "b.yar", ("beta_rule", "BETAMARK"))
    _write_rule(root / "gamma" / "g.yar", ("gamma_rule", "GAMMAMARK"))
    return root


@pytest.fixture
def rule_set(rules_dir: Path, logger: logging.Logger):
    return load_rules(str(rules_dir), logger)


@pytest.fixture
def engine(rule_set, logger: logging.Logger) -> ScanEngine:
    return ScanEngine(rule_set, logger)


@pytest.fixture
def make_app(rules_dir: Path, rule_set, engine, logger: logging.Logger):
    def _make(scan_engine=None, **overrides):
        settings = Settings(rules_dir=str(rules_dir), **overrides)
        app = create_app(settings, logger, rule_set, scan_engine or engine)
        app.config["TESTING"] = True
        return app

    return _make


@pytest.fixture
def client(make_app):
    return make_app().test_client()
