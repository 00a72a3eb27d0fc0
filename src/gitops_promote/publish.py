from __future__ import annotations

import re
from typing import Optional

from .errors import PublishFailed
from .git_utils import VersionControl
from .types import PromotionCommit, PromotionPlan


_MESSAGE_RE = re.compile(
	r"^chore\(gitops\): promote (?P<app>\S+) (?P<from_env>[^\s→]+?)(?:→|->)(?P<to_env>\S+) "
	r"tag=(?P<tag>\S+) anchor=(?P<anchor>[0-9a-f]+)$"
)


def commit_message(plan: PromotionPlan) -> str:
	return (
		f"chore(gitops): promote {plan.app} {plan.from_env}→{plan.to_env} "
		f"tag={plan.image.tag} anchor={plan.anchor.git_sha}"
	)


def parse_commit_message(subject: str, *, sha: str = "") -> Optional[PromotionCommit]:
	m = _MESSAGE_RE.match((subject or "").strip())
	if not m:
		return None
	return PromotionCommit(sha=sha, **m.groupdict())


def publish(vcs: VersionControl, plan: PromotionPlan) -> str:
	"""Commit the target record alone, then push it upstream.

	A failed push leaves the local commit in place and raises PublishFailed
	carrying its SHA.
	"""
	message = commit_message(plan)
	try:
		sha = vcs.commit([plan.target.path], message)
	except RuntimeError as e:
		raise PublishFailed(str(e), remote=vcs.remote, branch=vcs.branch) from e
	try:
		vcs.push()
	except RuntimeError as e:
		raise PublishFailed(str(e), commit_sha=sha, remote=vcs.remote, branch=vcs.branch) from e
	return sha
