from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .git_utils import _git_commit_touches, _git_log_subjects, _git_resolve_revision
from .publish import parse_commit_message
from .resolver import _record_path
from .types import DEFAULT_LAYOUT, PromotionCommit, RecordRef
from .yaml_utils import StructuredDocument


@dataclass
class AnchorCheck:
	record: RecordRef
	git_sha: str = ""
	from_env: str = ""
	promoted_at: str = ""
	revision: Optional[str] = None
	source_path: Optional[Path] = None
	ok: bool = False
	notes: List[str] = field(default_factory=list)


def promotion_history(repo_root: Path, record: RecordRef) -> List[PromotionCommit]:
	out: List[PromotionCommit] = []
	for sha, subject in _git_log_subjects(repo_root, record.path):
		parsed = parse_commit_message(subject, sha=sha)
		if parsed is not None and parsed.app == record.app and parsed.to_env == record.env:
			out.append(parsed)
	return out


def _field_str(store: StructuredDocument, record: RecordRef, dotted: str) -> str:
	v = store.read_field(record.path, dotted)
	if v is None or isinstance(v, (dict, list)):
		return ""
	return str(v).strip()


def verify_anchor(repo_root: Path, store: StructuredDocument, record: RecordRef, *, layout: str = DEFAULT_LAYOUT) -> AnchorCheck:
	"""Check that a record's anchor names a commit which touched its source record."""
	check = AnchorCheck(
		record=record,
		git_sha=_field_str(store, record, "appMetadata.promotionAnchor.gitSHA"),
		from_env=_field_str(store, record, "appMetadata.promotionAnchor.fromEnv"),
		promoted_at=_field_str(store, record, "appMetadata.promotionAnchor.promotedAt"),
	)
	if not check.git_sha:
		check.notes.append("no promotionAnchor.gitSHA: never promoted through this tool")
		return check
	if not check.from_env:
		check.notes.append("promotionAnchor.fromEnv is empty")
		return check

	check.source_path = _record_path(repo_root, record.app, check.from_env, layout)
	check.revision = _git_resolve_revision(repo_root, check.git_sha)
	if check.revision is None:
		check.notes.append(f"anchor {check.git_sha} does not resolve to a commit")
		return check
	if not _git_commit_touches(repo_root, check.revision, check.source_path):
		check.notes.append(f"commit {check.git_sha} did not modify {check.from_env} record")
		return check

	check.ok = True
	return check
