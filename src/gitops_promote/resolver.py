from __future__ import annotations

from pathlib import Path
from typing import Tuple

from .errors import RecordNotFound
from .types import DEFAULT_LAYOUT, RecordRef


def _check_name(kind: str, value: str) -> str:
	v = (value or "").strip()
	if not v:
		raise ValueError(f"{kind} must be a non-empty string")
	if "/" in v or "\\" in v or v in (".", ".."):
		raise ValueError(f"{kind} {v!r} must be a single path component")
	return v


def _record_path(repo_root: Path, app: str, env: str, layout: str = DEFAULT_LAYOUT) -> Path:
	try:
		rel = layout.format(app=app, env=env)
	except (KeyError, IndexError) as e:
		raise ValueError(f"record layout {layout!r} may only use {{app}} and {{env}}") from e
	return repo_root / rel


def resolve_record(repo_root: Path, app: str, env: str, *, layout: str = DEFAULT_LAYOUT, role: str = "record") -> RecordRef:
	"""Locate the values record for (app, env); environments are not enumerated."""
	app = _check_name("app", app)
	env = _check_name("environment", env)
	path = _record_path(repo_root, app, env, layout)
	if not path.is_file():
		raise RecordNotFound(path, role=role)
	return RecordRef(app=app, env=env, path=path)


def resolve_pair(repo_root: Path, app: str, from_env: str, to_env: str, *, layout: str = DEFAULT_LAYOUT) -> Tuple[RecordRef, RecordRef]:
	source = resolve_record(repo_root, app, from_env, layout=layout, role="source")
	target = resolve_record(repo_root, app, to_env, layout=layout, role="target")
	if source.path == target.path:
		raise ValueError(f"source and target are the same record: {source.path}")
	return source, target
