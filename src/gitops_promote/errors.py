from __future__ import annotations

from pathlib import Path
from typing import List, Optional


class PromotionError(RuntimeError):
	"""Base of the promotion failure taxonomy.

	Each subclass is one distinct failure kind. ``lines`` holds the message
	shown to the operator: the first line says what failed, the rest say
	what to do about it.
	"""

	kind = "PromotionError"
	exit_code = 1

	def __init__(self, *lines: str) -> None:
		self.lines: List[str] = [ln for ln in lines if ln]
		super().__init__(self.lines[0] if self.lines else self.kind)

	def render(self) -> str:
		if not self.lines:
			return f"ERROR: {self.kind}"
		out = [f"ERROR: {self.lines[0]}"]
		out.extend(f"       {ln}" for ln in self.lines[1:])
		return "\n".join(out)


class RecordNotFound(PromotionError):
	kind = "RecordNotFound"
	exit_code = 2

	def __init__(self, path: Path, *, role: str) -> None:
		self.path = path
		self.role = role
		super().__init__(
			f"{role} values file not found: {path}",
			"Create the record before promoting into or out of it.",
		)


class DirtySource(PromotionError):
	kind = "DirtySource"
	exit_code = 3

	def __init__(self, path: Path) -> None:
		self.path = path
		super().__init__(
			f"{path} has uncommitted local changes.",
			"Commit or stash them before promoting.",
		)


class DirtyTarget(PromotionError):
	kind = "DirtyTarget"
	exit_code = 3

	def __init__(self, path: Path) -> None:
		self.path = path
		super().__init__(
			f"{path} has uncommitted local changes.",
			"The promotion commit would carry them; commit or discard them before promoting.",
		)


class BrokenChain(PromotionError):
	kind = "BrokenChain"
	exit_code = 4

	def __init__(self, from_env: str, to_env: str, path: Path) -> None:
		self.from_env = from_env
		self.to_env = to_env
		self.path = path
		super().__init__(
			f"{from_env}/{path.name} has no promotionAnchor.gitSHA.",
			f"{from_env} must be promoted via this tool before promoting to {to_env}.",
		)


class SourceFieldMissing(PromotionError):
	kind = "SourceFieldMissing"
	exit_code = 5

	def __init__(self, path: Path, field: str) -> None:
		self.path = path
		self.field = field
		super().__init__(
			f"{path} is missing required field {field}.",
			"The record looks hand-edited or corrupted; fix it and commit before promoting.",
		)


class MalformedRecord(PromotionError):
	kind = "MalformedRecord"
	exit_code = 5

	def __init__(self, path: Path, reason: str) -> None:
		self.path = path
		self.reason = reason
		super().__init__(
			f"{path} cannot be read or rewritten safely: {reason}",
			"The record looks hand-edited or corrupted; fix it and commit before promoting.",
		)


class PublishFailed(PromotionError):
	kind = "PublishFailed"
	exit_code = 6

	def __init__(self, reason: str, *, commit_sha: Optional[str] = None, remote: str = "", branch: str = "") -> None:
		self.reason = reason
		self.commit_sha = commit_sha
		self.remote = remote
		self.branch = branch
		if commit_sha:
			super().__init__(
				f"push to {remote}/{branch} failed: {reason}",
				f"Local commit {commit_sha[:8]} exists but is not visible to the reconciler yet.",
				"Pull/rebase and push again; do not re-run the promotion (it would duplicate the commit).",
			)
		else:
			super().__init__(
				f"commit failed: {reason}",
				"Nothing was committed; inspect the working copy before re-running.",
			)

	@property
	def committed(self) -> bool:
		return bool(self.commit_sha)
