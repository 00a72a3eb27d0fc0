from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple


class FakeVcs:
	def __init__(self, *, dirty: Optional[Set[Path]] = None, revisions: Optional[Dict[Path, str]] = None) -> None:
		self.remote = "origin"
		self.branch = "main"
		self.dirty = dirty or set()
		self.revisions = revisions or {}
		self.calls: List[str] = []
		self.commits: List[Tuple[List[Path], str]] = []
		self.pushes = 0
		self.commit_error: Optional[Exception] = None
		self.push_error: Optional[Exception] = None

	def is_dirty(self, path: Path) -> bool:
		self.calls.append("is_dirty")
		return path in self.dirty

	def last_revision(self, path: Path) -> str:
		self.calls.append("last_revision")
		return self.revisions.get(path, "")

	def commit(self, paths: Sequence[Path], message: str) -> str:
		self.calls.append("commit")
		if self.commit_error is not None:
			raise self.commit_error
		self.commits.append((list(paths), message))
		return f"{len(self.commits):040x}"

	def push(self) -> None:
		self.calls.append("push")
		if self.push_error is not None:
			raise self.push_error
		self.pushes += 1

	def commit_and_push(self, paths: Sequence[Path], message: str) -> str:
		sha = self.commit(paths, message)
		self.push()
		return sha


class FakeStore:
	def __init__(self, fields: Optional[Dict[Path, Dict[str, Any]]] = None) -> None:
		self.fields = fields or {}
		self.writes: List[Tuple[Path, Dict[str, Any]]] = []

	def read_field(self, path: Path, dotted: str) -> Any:
		return self.fields.get(path, {}).get(dotted)

	def read_text_field(self, path: Path, dotted: str) -> Optional[str]:
		v = self.read_field(path, dotted)
		if v is None or isinstance(v, (dict, list, bool)):
			return None
		return str(v)

	def write_fields(self, path: Path, fields: Mapping[str, Any]) -> None:
		self.writes.append((path, dict(fields)))
		self.fields.setdefault(path, {}).update(fields)
