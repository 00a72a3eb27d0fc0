from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .audit import promotion_history, verify_anchor
from .env import _env_bool, _env_key, _env_path, _env_str
from .errors import PromotionError, PublishFailed
from .git_utils import GitVersionControl, _find_repo_root, _set_git_verbose
from .resolver import resolve_record
from .types import DEFAULT_APP, DEFAULT_LAYOUT, DEFAULT_ROOT_ENV, PromotionConfig, PromotionPlan
from .workflow import apply_plan, prepare
from .yaml_utils import YamlRecordStore


_BOX_WIDTH = 37


def _add_common_args(ap: argparse.ArgumentParser) -> None:
	ap.add_argument("--repo", type=Path, default=None, help=f"Path inside the gitops repository (env: {_env_key('REPO')})")
	ap.add_argument("--root-env", default=None, help=f"Root environment seeded by CI, exempt from the chain check (default {DEFAULT_ROOT_ENV}) (env: {_env_key('ROOT_ENV')})")
	ap.add_argument("--layout", default=None, help=f"Record path template relative to the repo root (default {DEFAULT_LAYOUT}) (env: {_env_key('RECORD_LAYOUT')})")
	ap.add_argument("--verbose-git", action="store_true", default=None, help=f"Echo git commands to stderr (env: {_env_key('GIT_VERBOSE')})")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
	ap = argparse.ArgumentParser(
		prog="promote",
		description="Promote an image from one environment's values record to the next, anchored to the source's git commit.",
	)
	ap.add_argument("from_env", metavar="from-env", help="Environment to promote from (e.g. dev)")
	ap.add_argument("to_env", metavar="to-env", help="Environment to promote to (e.g. staging)")
	ap.add_argument("app", nargs="?", default=None, help=f"Application (default {DEFAULT_APP}) (env: {_env_key('APP')})")
	_add_common_args(ap)
	ap.add_argument("--remote", default=None, help=f"Git remote to push to (default origin) (env: {_env_key('REMOTE')})")
	ap.add_argument("--branch", default=None, help=f"Upstream branch to push to (default: current branch) (env: {_env_key('BRANCH')})")
	ap.add_argument("--no-push", action="store_true", default=None, help=f"Commit locally without pushing (env: {_env_key('NO_PUSH')})")
	ap.add_argument("--dry-run", action="store_true", default=None, help=f"Run the checks and print the plan, write nothing (env: {_env_key('DRY_RUN')})")
	return ap.parse_args(argv)


def _parse_audit_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
	ap = argparse.ArgumentParser(
		prog="promote-audit",
		description="Verify an environment record's promotion anchor and list its promotion history.",
	)
	ap.add_argument("env", help="Environment whose record to audit")
	ap.add_argument("app", nargs="?", default=None, help=f"Application (default {DEFAULT_APP}) (env: {_env_key('APP')})")
	_add_common_args(ap)
	ap.add_argument("--limit", type=int, default=20, help="Max history entries to print (default 20)")
	return ap.parse_args(argv)


def _resolve_env_args(args: argparse.Namespace) -> argparse.Namespace:
	args.repo = args.repo or _env_path("REPO", Path("."))
	args.app = args.app or _env_str("APP", DEFAULT_APP)
	args.root_env = args.root_env or _env_str("ROOT_ENV", DEFAULT_ROOT_ENV)
	args.layout = args.layout or _env_str("RECORD_LAYOUT", DEFAULT_LAYOUT)
	args.verbose_git = args.verbose_git if args.verbose_git is not None else _env_bool("GIT_VERBOSE", False)

	if hasattr(args, "remote"):
		args.remote = args.remote or _env_str("REMOTE", "origin")
		args.branch = args.branch or _env_str("BRANCH", "")
		args.no_push = args.no_push if args.no_push is not None else _env_bool("NO_PUSH", False)
		args.dry_run = args.dry_run if args.dry_run is not None else _env_bool("DRY_RUN", False)
	return args


def _build_config(args: argparse.Namespace, repo_root: Path) -> PromotionConfig:
	return PromotionConfig(
		repo_root=repo_root,
		root_env=args.root_env,
		layout=args.layout,
		remote=args.remote,
		branch=args.branch,
		push=not args.no_push,
		dry_run=args.dry_run,
	)


def _box_row(label: str, value: str) -> str:
	return f"│  {label:<11}: {value:<{_BOX_WIDTH}}│"


def _format_plan(plan: PromotionPlan) -> str:
	rule = "─" * (_BOX_WIDTH + 15)
	lines = [
		"",
		f"┌{rule}┐",
		f"│  {'GitOps Promotion':<{_BOX_WIDTH + 13}}│",
		f"├{rule}┤",
		_box_row("App", plan.app),
		_box_row("From", plan.from_env),
		_box_row("To", plan.to_env),
		_box_row("Image", plan.image.ref),
		_box_row("Anchor SHA", plan.anchor.git_sha),
		_box_row("Promoted at", plan.anchor.promoted_at),
		f"└{rule}┘",
		"",
	]
	return "\n".join(lines)


def _format_sync_hint(app: str, to_env: str) -> str:
	name = f"{app}-{to_env}"
	return "\n".join([
		f"  ArgoCD will sync {name} within ~3 minutes.",
		"  Force immediate sync:",
		f"    kubectl -n argocd patch application {name} \\",
		"      --type merge -p '{\"metadata\":{\"annotations\":{\"argocd.argoproj.io/refresh\":\"hard\"}}}'",
	])


def _format_failure(e: PromotionError) -> str:
	text = e.render()
	if isinstance(e, PublishFailed) and e.committed:
		text += f"\n       local commit: {e.commit_sha}"
	return text


def main(argv: Optional[List[str]] = None) -> int:
	args = _parse_args(argv)
	args = _resolve_env_args(args)
	_set_git_verbose(args.verbose_git)

	try:
		repo_root = _find_repo_root(args.repo)
	except RuntimeError as e:
		print(f"ERROR: {e}", file=sys.stderr)
		return 2

	config = _build_config(args, repo_root)
	vcs = GitVersionControl(repo_root, remote=config.remote, branch=config.branch, push=config.push)
	store = YamlRecordStore()

	try:
		plan = prepare(config, args.app, args.from_env, args.to_env, vcs=vcs, store=store)
		print(_format_plan(plan))

		if config.dry_run:
			print(f"DRY-RUN: would update {plan.target.path} and commit it. Drop --dry-run or unset {_env_key('DRY_RUN')}.")
			return 0

		sha = apply_plan(plan, vcs=vcs, store=store)
	except PromotionError as e:
		print(_format_failure(e), file=sys.stderr)
		return e.exit_code
	except ValueError as e:
		print(f"ERROR: {e}", file=sys.stderr)
		return 2
	except RuntimeError as e:
		print(f"ERROR: {e}", file=sys.stderr)
		return 1

	print(f"Promoted {plan.app} to {plan.to_env}.")
	if not config.push:
		print(f"  Committed {sha[:8]} locally; not pushed. Run: git push {vcs.remote} HEAD:{vcs.branch}")
		return 0
	print(f"  Pushed {sha[:8]} to {vcs.remote}/{vcs.branch}.")
	print(_format_sync_hint(plan.app, plan.to_env))
	return 0


def audit_main(argv: Optional[List[str]] = None) -> int:
	args = _parse_audit_args(argv)
	args = _resolve_env_args(args)
	_set_git_verbose(args.verbose_git)

	try:
		repo_root = _find_repo_root(args.repo)
		record = resolve_record(repo_root, args.app, args.env, layout=args.layout)
		check = verify_anchor(repo_root, YamlRecordStore(), record, layout=args.layout)
		history = promotion_history(repo_root, record)
	except PromotionError as e:
		print(_format_failure(e), file=sys.stderr)
		return e.exit_code
	except (ValueError, RuntimeError) as e:
		print(f"ERROR: {e}", file=sys.stderr)
		return 2

	print(f"Record     : {record.path}")
	print(f"Anchor SHA : {check.git_sha or '-'}")
	print(f"From       : {check.from_env or '-'}")
	print(f"Promoted at: {check.promoted_at or '-'}")
	if check.ok:
		print(f"Anchor OK  : {check.revision} modified {check.source_path}")
	for n in check.notes:
		print(f"Anchor     : {n}")

	if not history:
		print("History: none")
	else:
		print("History:")
		for c in history[: args.limit]:
			print(f"- {c.sha[:8]} {c.from_env}→{c.to_env} tag={c.tag} anchor={c.anchor}")
		if len(history) > args.limit:
			print(f"- ... and {len(history) - args.limit} more")

	if check.ok or record.env == args.root_env:
		return 0
	return 4
