from __future__ import annotations

from .errors import BrokenChain, DirtySource, DirtyTarget
from .git_utils import VersionControl
from .types import RecordRef
from .yaml_utils import StructuredDocument


ANCHOR_SHA_FIELD = "appMetadata.promotionAnchor.gitSHA"


def check_clean_source(vcs: VersionControl, source: RecordRef) -> None:
	if vcs.is_dirty(source.path):
		raise DirtySource(source.path)


def check_clean_target(vcs: VersionControl, target: RecordRef) -> None:
	# the commit takes the whole file, so local edits would ride along
	if vcs.is_dirty(target.path):
		raise DirtyTarget(target.path)


def _existing_anchor(store: StructuredDocument, record: RecordRef) -> str:
	v = store.read_field(record.path, ANCHOR_SHA_FIELD)
	if v is None or isinstance(v, (dict, list)):
		return ""
	return str(v).strip()


def check_chain(store: StructuredDocument, source: RecordRef, *, to_env: str, root_env: str) -> None:
	# the root environment is seeded by CI and has no anchor of its own
	if source.env == root_env:
		return
	if not _existing_anchor(store, source):
		raise BrokenChain(source.env, to_env, source.path)


def evaluate_guards(
	vcs: VersionControl,
	store: StructuredDocument,
	source: RecordRef,
	target: RecordRef,
	*,
	root_env: str,
) -> None:
	"""Raise the first failing precondition; nothing is written either way."""
	check_clean_source(vcs, source)
	check_chain(store, source, to_env=target.env, root_env=root_env)
	check_clean_target(vcs, target)
