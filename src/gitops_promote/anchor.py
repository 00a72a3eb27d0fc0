from __future__ import annotations

import datetime
import re
from typing import Any, Dict, Optional

from .errors import DirtySource, SourceFieldMissing
from .git_utils import VersionControl
from .types import ImageRef, PromotionAnchor, PromotionPlan, RecordRef
from .yaml_utils import StructuredDocument


SHORT_SHA_LEN = 8

_HEX_RE = re.compile(r"^[0-9a-f]{7,64}$")


def short_sha(sha: str) -> str:
	s = (sha or "").strip().lower()
	if not _HEX_RE.match(s):
		raise ValueError(f"not a git revision id: {sha!r}")
	return s[:SHORT_SHA_LEN]


def utc_timestamp(now: Optional[datetime.datetime] = None) -> str:
	if now is None:
		now = datetime.datetime.now(datetime.timezone.utc)
	elif now.tzinfo is None:
		now = now.replace(tzinfo=datetime.timezone.utc)
	return now.astimezone(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _scalar_field(store: StructuredDocument, record: RecordRef, dotted: str) -> str:
	# source text, not the parsed value: an unquoted 1.10 must stay 1.10
	v = store.read_text_field(record.path, dotted)
	s = (v or "").strip()
	if not s:
		raise SourceFieldMissing(record.path, dotted)
	return s


def read_source_image(store: StructuredDocument, source: RecordRef) -> ImageRef:
	return ImageRef(
		repository=_scalar_field(store, source, "image.repository"),
		tag=_scalar_field(store, source, "image.tag"),
	)


def plan_promotion(
	vcs: VersionControl,
	store: StructuredDocument,
	source: RecordRef,
	target: RecordRef,
	*,
	now: Optional[datetime.datetime] = None,
) -> PromotionPlan:
	image = read_source_image(store, source)
	full_sha = vcs.last_revision(source.path)
	if not full_sha:
		# no commit has ever touched the source, so nothing can anchor it
		raise DirtySource(source.path)
	anchor = PromotionAnchor(
		git_sha=short_sha(full_sha),
		promoted_at=utc_timestamp(now),
		from_env=source.env,
	)
	return PromotionPlan(
		app=source.app,
		from_env=source.env,
		to_env=target.env,
		source=source,
		target=target,
		image=image,
		anchor=anchor,
		full_sha=full_sha,
	)


def anchor_fields(plan: PromotionPlan) -> Dict[str, Any]:
	return {
		"image.repository": plan.image.repository,
		"image.tag": plan.image.tag,
		"appMetadata.lastPromotedTag": plan.image.tag,
		"appMetadata.promotionAnchor.gitSHA": plan.anchor.git_sha,
		"appMetadata.promotionAnchor.promotedAt": plan.anchor.promoted_at,
		"appMetadata.promotionAnchor.fromEnv": plan.anchor.from_env,
	}


def write_anchor(store: StructuredDocument, plan: PromotionPlan) -> None:
	store.write_fields(plan.target.path, anchor_fields(plan))
