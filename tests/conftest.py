from __future__ import annotations

import sys
from pathlib import Path

import pytest


SRC_ROOT = Path(__file__).resolve().parents[1] / "src"

if str(SRC_ROOT) not in sys.path:
	sys.path.insert(0, str(SRC_ROOT))

for name in list(sys.modules):
	if name == "gitops_promote" or name.startswith("gitops_promote."):
		del sys.modules[name]

from git_helpers import GitopsRepo  # noqa: E402


@pytest.fixture
def gitops(tmp_path: Path, monkeypatch) -> GitopsRepo:
	for key in ("GIT_AUTHOR_NAME", "GIT_AUTHOR_EMAIL", "GIT_COMMITTER_NAME", "GIT_COMMITTER_EMAIL"):
		monkeypatch.delenv(key, raising=False)
	return GitopsRepo.create(tmp_path)
