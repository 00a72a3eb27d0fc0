from pathlib import Path

import pytest

from gitops_promote.errors import BrokenChain, DirtySource, DirtyTarget
from gitops_promote.guards import check_chain, evaluate_guards
from gitops_promote.types import RecordRef

from fakes import FakeStore, FakeVcs


DEV = RecordRef(app="hello-web", env="dev", path=Path("/repo/dev/values.yaml"))
STAGING = RecordRef(app="hello-web", env="staging", path=Path("/repo/staging/values.yaml"))
PROD = RecordRef(app="hello-web", env="prod", path=Path("/repo/prod/values.yaml"))

ANCHOR = "appMetadata.promotionAnchor.gitSHA"


def test_root_env_skips_chain_check() -> None:
	# Intended behavior: the CI-seeded root env is promotable without an anchor.
	vcs = FakeVcs()
	store = FakeStore({DEV.path: {ANCHOR: ""}})
	evaluate_guards(vcs, store, DEV, STAGING, root_env="dev")
	assert vcs.calls == ["is_dirty", "is_dirty"]


@pytest.mark.parametrize("anchor", ["", None, "  ", {"nested": 1}])
def test_empty_anchor_breaks_chain(anchor) -> None:
	store = FakeStore({STAGING.path: {ANCHOR: anchor}})
	with pytest.raises(BrokenChain) as ei:
		check_chain(store, STAGING, to_env="prod", root_env="dev")
	assert "staging must be promoted" in ei.value.render()
	assert ei.value.exit_code == 4


def test_anchored_source_passes() -> None:
	store = FakeStore({STAGING.path: {ANCHOR: "a12a8eb3"}})
	evaluate_guards(FakeVcs(), store, STAGING, PROD, root_env="dev")


def test_root_env_is_configurable() -> None:
	store = FakeStore({DEV.path: {ANCHOR: ""}})
	with pytest.raises(BrokenChain):
		check_chain(store, DEV, to_env="staging", root_env="ci")


def test_dirty_source_reported_first() -> None:
	# Intended behavior: with both guards failing, the dirty source wins.
	vcs = FakeVcs(dirty={STAGING.path})
	store = FakeStore({STAGING.path: {ANCHOR: ""}})
	with pytest.raises(DirtySource) as ei:
		evaluate_guards(vcs, store, STAGING, PROD, root_env="dev")
	assert ei.value.exit_code == 3
	assert "Commit or stash" in ei.value.render()
	assert store.writes == []


def test_dirty_target_refused() -> None:
	# Intended behavior: local edits to the target would end up in the promotion commit.
	vcs = FakeVcs(dirty={STAGING.path})
	store = FakeStore({DEV.path: {ANCHOR: ""}})
	with pytest.raises(DirtyTarget) as ei:
		evaluate_guards(vcs, store, DEV, STAGING, root_env="dev")
	assert ei.value.path == STAGING.path
	assert ei.value.exit_code == 3
	assert "commit or discard them" in ei.value.render()
	assert store.writes == []


def test_broken_chain_reported_before_dirty_target() -> None:
	vcs = FakeVcs(dirty={PROD.path})
	store = FakeStore({STAGING.path: {ANCHOR: ""}})
	with pytest.raises(BrokenChain):
		evaluate_guards(vcs, store, STAGING, PROD, root_env="dev")
