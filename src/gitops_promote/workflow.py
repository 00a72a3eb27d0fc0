from __future__ import annotations

import datetime
import time
from typing import Optional

from .anchor import plan_promotion, utc_timestamp, write_anchor
from .errors import PublishFailed
from .git_utils import VersionControl
from .guards import evaluate_guards
from .publish import publish
from .resolver import resolve_pair
from .types import PromotionConfig, PromotionPlan, PromotionResult, RecordRef
from .yaml_utils import StructuredDocument


PROMOTED_AT_FIELD = "appMetadata.promotionAnchor.promotedAt"


def _now() -> datetime.datetime:
	return datetime.datetime.now(datetime.timezone.utc)


def _promotion_time(store: StructuredDocument, target: RecordRef, now: Optional[datetime.datetime]) -> datetime.datetime:
	"""Clock reading for the anchor, past the second the target was last stamped.

	A re-run within that second would leave the target text unchanged and
	give git nothing to commit, so wait for the next second instead.
	"""
	if now is not None:
		return now
	current = _now()
	if store.read_field(target.path, PROMOTED_AT_FIELD) == utc_timestamp(current):
		time.sleep(1.0 - current.microsecond / 1_000_000)
		current = _now()
	return current


def prepare(
	config: PromotionConfig,
	app: str,
	from_env: str,
	to_env: str,
	*,
	vcs: VersionControl,
	store: StructuredDocument,
	now: Optional[datetime.datetime] = None,
) -> PromotionPlan:
	"""Resolve both records, run the guards and compute the plan; writes nothing."""
	source, target = resolve_pair(config.repo_root, app, from_env, to_env, layout=config.layout)
	evaluate_guards(vcs, store, source, target, root_env=config.root_env)
	return plan_promotion(vcs, store, source, target, now=_promotion_time(store, target, now))


def apply_plan(plan: PromotionPlan, *, vcs: VersionControl, store: StructuredDocument) -> str:
	"""Write the anchor into the target record and publish it as one commit."""
	original = plan.target.path.read_text(encoding="utf-8")
	write_anchor(store, plan)
	try:
		return publish(vcs, plan)
	except PublishFailed as e:
		if not e.committed:
			# nothing reached history; put the working copy back as it was
			plan.target.path.write_text(original, encoding="utf-8")
		raise


def promote(
	config: PromotionConfig,
	app: str,
	from_env: str,
	to_env: str,
	*,
	vcs: VersionControl,
	store: StructuredDocument,
	now: Optional[datetime.datetime] = None,
) -> PromotionResult:
	plan = prepare(config, app, from_env, to_env, vcs=vcs, store=store, now=now)
	if config.dry_run:
		return PromotionResult(plan=plan, commit_sha=None, pushed=False, remote=vcs.remote, branch=vcs.branch)
	sha = apply_plan(plan, vcs=vcs, store=store)
	return PromotionResult(plan=plan, commit_sha=sha, pushed=config.push, remote=vcs.remote, branch=vcs.branch)
