from __future__ import annotations

import os
import re
import subprocess
import sys
from pathlib import Path
from typing import List, Optional, Protocol, Sequence


_GIT_VERBOSE = False


def _set_git_verbose(enabled: bool) -> None:
	global _GIT_VERBOSE
	_GIT_VERBOSE = bool(enabled)


def _mask_git_args(cmd: Sequence[str]) -> List[str]:
	out: List[str] = []
	for arg in cmd:
		a = re.sub(r"(Authorization:\s*)(\S+\s+)?\S+", r"\1<redacted>", arg)
		a = re.sub(r"(https?://)[^/@\s]+@", r"\1<redacted>@", a)
		out.append(a)
	return out


def _run(cmd: List[str], *, cwd: Path, check: bool = True) -> subprocess.CompletedProcess:
	if _GIT_VERBOSE:
		print("+ " + " ".join(_mask_git_args(cmd)), file=sys.stderr)
	return subprocess.run(
		cmd,
		cwd=str(cwd),
		check=check,
		stdout=subprocess.PIPE,
		stderr=subprocess.PIPE,
		text=True,
	)


def _run_git(repo_root: Path, args: List[str], *, check: bool = True) -> subprocess.CompletedProcess:
	return _run(["git", "-C", str(repo_root), "-c", f"safe.directory={repo_root}", *args], cwd=repo_root, check=check)


def _git_error(what: str, p: subprocess.CompletedProcess) -> RuntimeError:
	detail = (p.stderr or p.stdout or "").strip()
	return RuntimeError(f"{what} (exit {p.returncode})" + (f"\n{detail}" if detail else ""))


def _find_repo_root(path: Path) -> Path:
	"""Nearest directory at or above ``path`` holding a ``.git`` entry.

	Runs no git process, so records can be resolved before any git call.
	"""
	start = path.resolve()
	for d in (start, *start.parents):
		if (d / ".git").exists():
			return d
	raise RuntimeError(f"{path} is not inside a git repository")


def _rel(repo_root: Path, path: Path) -> str:
	try:
		return path.resolve().relative_to(repo_root.resolve()).as_posix()
	except ValueError:
		return str(path)


def _git_current_branch(repo_root: Path) -> str:
	p = _run_git(repo_root, ["rev-parse", "--abbrev-ref", "HEAD"])
	return p.stdout.strip()


def _git_is_tracked(repo_root: Path, path: Path) -> bool:
	p = _run_git(repo_root, ["ls-files", "--error-unmatch", "--", _rel(repo_root, path)], check=False)
	return p.returncode == 0


def _git_path_is_dirty(repo_root: Path, path: Path) -> bool:
	"""True when the tracked content of ``path`` differs from HEAD.

	Staged and unstaged edits both count. A path git does not track at all is
	dirty too, since no commit describes its content.
	"""
	if not _git_is_tracked(repo_root, path):
		return True
	p = _run_git(repo_root, ["diff", "--quiet", "HEAD", "--", _rel(repo_root, path)], check=False)
	if p.returncode == 0:
		return False
	if p.returncode == 1:
		return True
	raise _git_error(f"git diff failed for {path}", p)


def _git_last_revision(repo_root: Path, path: Path) -> str:
	p = _run_git(repo_root, ["log", "-1", "--format=%H", "--", _rel(repo_root, path)], check=False)
	if p.returncode != 0:
		raise _git_error(f"git log failed for {path}", p)
	return p.stdout.strip()


def _git_commit_paths(repo_root: Path, paths: Sequence[Path], message: str) -> str:
	rel_paths = [_rel(repo_root, p) for p in paths]
	p = _run_git(repo_root, ["add", "--", *rel_paths], check=False)
	if p.returncode != 0:
		raise _git_error("git add failed", p)
	p = _run_git(repo_root, ["commit", "--only", "-m", message, "--", *rel_paths], check=False)
	if p.returncode != 0:
		_run_git(repo_root, ["reset", "-q", "--", *rel_paths], check=False)
		raise _git_error("git commit failed", p)
	p = _run_git(repo_root, ["rev-parse", "HEAD"])
	return p.stdout.strip()


def _git_push(repo_root: Path, remote: str, branch: str) -> None:
	p = _run_git(repo_root, ["push", remote, f"HEAD:{branch}"], check=False)
	if p.returncode != 0:
		raise _git_error(f"git push {remote} {branch} failed", p)


def _git_resolve_revision(repo_root: Path, rev: str) -> Optional[str]:
	p = _run_git(repo_root, ["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"], check=False)
	if p.returncode != 0:
		return None
	return p.stdout.strip() or None


def _git_changed_files(repo_root: Path, sha: str) -> List[str]:
	p = _run_git(repo_root, ["show", "--no-renames", "--name-only", "--format=", sha], check=False)
	if p.returncode != 0:
		raise _git_error(f"git show failed for {sha}", p)
	return [ln.strip() for ln in p.stdout.splitlines() if ln.strip()]


def _git_commit_touches(repo_root: Path, sha: str, path: Path) -> bool:
	return _rel(repo_root, path) in _git_changed_files(repo_root, sha)


def _git_log_subjects(repo_root: Path, path: Path) -> List[tuple[str, str]]:
	p = _run_git(repo_root, ["log", "--format=%H%x00%s", "--", _rel(repo_root, path)], check=False)
	if p.returncode != 0:
		raise _git_error(f"git log failed for {path}", p)
	out: List[tuple[str, str]] = []
	for ln in p.stdout.splitlines():
		sha, _, subject = ln.partition("\0")
		if sha:
			out.append((sha, subject))
	return out


def _git_config_get(repo_root: Path, key: str) -> Optional[str]:
	p = _run_git(repo_root, ["config", "--get", key], check=False)
	if p.returncode != 0:
		return None
	v = p.stdout.strip()
	return v or None


def _ensure_git_identity(repo_root: Path) -> None:
	name = _git_config_get(repo_root, "user.name")
	email = _git_config_get(repo_root, "user.email")
	if name and email:
		return

	fallback_name = (
		os.environ.get("GIT_AUTHOR_NAME")
		or os.environ.get("GIT_COMMITTER_NAME")
		or "promote-bot"
	)
	fallback_email = (
		os.environ.get("GIT_AUTHOR_EMAIL")
		or os.environ.get("GIT_COMMITTER_EMAIL")
		or "promote@localhost"
	)

	if not name:
		_run_git(repo_root, ["config", "user.name", fallback_name])
	if not email:
		_run_git(repo_root, ["config", "user.email", fallback_email])


class VersionControl(Protocol):
	remote: str
	branch: str

	def is_dirty(self, path: Path) -> bool:
		...

	def last_revision(self, path: Path) -> str:
		...

	def commit(self, paths: Sequence[Path], message: str) -> str:
		...

	def push(self) -> None:
		...

	def commit_and_push(self, paths: Sequence[Path], message: str) -> str:
		...


class GitVersionControl:
	"""VersionControl backed by the ``git`` binary on one working copy."""

	def __init__(self, repo_root: Path, *, remote: str = "origin", branch: str = "", push: bool = True) -> None:
		self.repo_root = repo_root
		self.remote = remote
		self._branch = branch
		self.push_enabled = push

	@property
	def branch(self) -> str:
		if not self._branch:
			self._branch = _git_current_branch(self.repo_root)
		return self._branch

	def is_dirty(self, path: Path) -> bool:
		return _git_path_is_dirty(self.repo_root, path)

	def last_revision(self, path: Path) -> str:
		return _git_last_revision(self.repo_root, path)

	def commit(self, paths: Sequence[Path], message: str) -> str:
		_ensure_git_identity(self.repo_root)
		return _git_commit_paths(self.repo_root, paths, message)

	def push(self) -> None:
		if not self.push_enabled:
			return
		_git_push(self.repo_root, self.remote, self.branch)

	def commit_and_push(self, paths: Sequence[Path], message: str) -> str:
		sha = self.commit(paths, message)
		self.push()
		return sha
