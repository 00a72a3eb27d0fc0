from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


DEFAULT_APP = "hello-web"
DEFAULT_ROOT_ENV = "dev"
DEFAULT_LAYOUT = "gitops-repo/apps/{app}/{env}/values.yaml"


@dataclass(frozen=True)
class RecordRef:
	app: str
	env: str
	path: Path


@dataclass(frozen=True)
class ImageRef:
	repository: str
	tag: str

	@property
	def ref(self) -> str:
		return f"{self.repository}:{self.tag}"


@dataclass(frozen=True)
class PromotionAnchor:
	git_sha: str
	promoted_at: str
	from_env: str


@dataclass(frozen=True)
class PromotionPlan:
	app: str
	from_env: str
	to_env: str
	source: RecordRef
	target: RecordRef
	image: ImageRef
	anchor: PromotionAnchor
	full_sha: str


@dataclass(frozen=True)
class PromotionResult:
	plan: PromotionPlan
	commit_sha: Optional[str]
	pushed: bool
	remote: str
	branch: str


@dataclass(frozen=True)
class PromotionConfig:
	repo_root: Path
	root_env: str = DEFAULT_ROOT_ENV
	layout: str = DEFAULT_LAYOUT
	remote: str = "origin"
	branch: str = ""
	push: bool = True
	dry_run: bool = False


@dataclass(frozen=True)
class PromotionCommit:
	sha: str
	app: str
	from_env: str
	to_env: str
	tag: str
	anchor: str
