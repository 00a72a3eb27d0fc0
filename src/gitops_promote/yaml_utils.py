from __future__ import annotations

import copy
import os
import tempfile
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap
from ruamel.yaml.error import YAMLError
from ruamel.yaml.nodes import MappingNode, ScalarNode
from ruamel.yaml.scalarstring import ScalarString

from .errors import MalformedRecord


# Sibling keys new record fields are inserted after, so a freshly created
# appMetadata block reads the same way a seeded one does.
_INSERT_AFTER: Dict[str, List[str]] = {
	"image": [],
	"repository": [],
	"tag": ["repository"],
	"appMetadata": ["image"],
	"lastPromotedTag": [],
	"promotionAnchor": ["lastPromotedTag"],
	"gitSHA": [],
	"promotedAt": ["gitSHA"],
	"fromEnv": ["gitSHA", "promotedAt"],
}


def _detect_seq_indent(raw: str) -> Tuple[int, int]:
	prev_indent = None
	for line in raw.splitlines():
		stripped = line.lstrip(" ")
		if not stripped or stripped.startswith("#"):
			continue
		indent = len(line) - len(stripped)
		if stripped.startswith("- ") and prev_indent is not None:
			offset = max(indent - prev_indent, 0)
			return offset + 2, offset
		prev_indent = indent if stripped.rstrip().endswith(":") else None
	return 4, 2


def _mk_yaml(explicit_start: bool, *, sequence: int = 4, offset: int = 2) -> YAML:
	yaml = YAML(typ="rt")
	yaml.preserve_quotes = True
	yaml.width = 4096
	yaml.explicit_start = explicit_start
	yaml.indent(mapping=2, sequence=sequence, offset=offset)
	return yaml


def _read_all_yaml_docs(path) -> Tuple[str, List[Any], YAML]:
	raw = path.read_text(encoding="utf-8")
	explicit_start = raw.lstrip().startswith("---")
	sequence, offset = _detect_seq_indent(raw)
	yaml = _mk_yaml(explicit_start=explicit_start, sequence=sequence, offset=offset)
	docs = list(yaml.load_all(raw))
	return raw, docs, yaml


def _dump_all_yaml_docs(yaml: YAML, docs: List[Any]) -> str:
	buf = StringIO()
	yaml.dump_all(docs, buf)
	return buf.getvalue()


def _insert_if_missing(m: CommentedMap, key: str, value: Any, *, after_keys: List[str]) -> None:
	if key in m:
		return
	insert_at = len(m)
	for ak in after_keys:
		if ak in m:
			insert_at = list(m.keys()).index(ak) + 1
	m.insert(insert_at, key, value)


def _get_path(doc: Any, dotted: str) -> Any:
	cur = doc
	for part in dotted.split("."):
		if not isinstance(cur, dict) or part not in cur:
			return None
		cur = cur[part]
	return cur


_TEXT_TAGS = ("tag:yaml.org,2002:str", "tag:yaml.org,2002:int", "tag:yaml.org,2002:float")


def _scalar_text(node: Any, dotted: str) -> Optional[str]:
	"""Scalar at ``dotted`` as written in the source, before type resolution.

	``tag: 1.10`` loads as the float 1.1; the composed node still holds
	"1.10". Nulls, booleans and collections give None.
	"""
	cur = node
	for part in dotted.split("."):
		if not isinstance(cur, MappingNode):
			return None
		nxt = None
		for k, v in cur.value:
			if isinstance(k, ScalarNode) and k.value == part:
				nxt = v
		if nxt is None:
			return None
		cur = nxt
	if not isinstance(cur, ScalarNode) or cur.tag not in _TEXT_TAGS:
		return None
	return cur.value


def _set_path(doc: CommentedMap, dotted: str, value: Any) -> None:
	parts = dotted.split(".")
	cur = doc
	for part in parts[:-1]:
		nxt = cur.get(part)
		if not isinstance(nxt, dict):
			if nxt is not None:
				raise ValueError(f"{dotted}: {part} is not a mapping")
			nxt = CommentedMap()
			if part in cur:
				cur[part] = nxt
			else:
				_insert_if_missing(cur, part, nxt, after_keys=_INSERT_AFTER.get(part, []))
		cur = nxt
	leaf = parts[-1]
	if leaf in cur:
		old = cur[leaf]
		if isinstance(old, ScalarString) and isinstance(value, str):
			value = type(old)(value)
		cur[leaf] = value
	else:
		_insert_if_missing(cur, leaf, value, after_keys=_INSERT_AFTER.get(leaf, []))


def _strip_paths(doc: Any, dotted_paths: List[str]) -> Any:
	"""Plain-python copy of ``doc`` with the given dotted leaves removed."""
	plain = _to_plain(doc)
	for dotted in dotted_paths:
		parts = dotted.split(".")
		cur = plain
		for part in parts[:-1]:
			cur = cur.get(part) if isinstance(cur, dict) else None
			if cur is None:
				break
		if isinstance(cur, dict):
			cur.pop(parts[-1], None)
	return _prune_empty(plain, dotted_paths)


def _prune_empty(plain: Any, dotted_paths: List[str]) -> Any:
	# intermediate maps created for new fields are empty once the leaves go
	for dotted in dotted_paths:
		parts = dotted.split(".")
		for depth in range(len(parts) - 1, 0, -1):
			cur = plain
			for part in parts[: depth - 1]:
				cur = cur.get(part) if isinstance(cur, dict) else None
			if isinstance(cur, dict) and parts[depth - 1] in cur and cur[parts[depth - 1]] in ({}, None):
				cur.pop(parts[depth - 1])
	return plain


def _to_plain(v: Any) -> Any:
	if isinstance(v, dict):
		return {str(k): _to_plain(x) for k, x in v.items()}
	if isinstance(v, list):
		return [_to_plain(x) for x in v]
	return copy.copy(v)


def _atomic_write(path: Path, text: str) -> None:
	fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
	try:
		with os.fdopen(fd, "w", encoding="utf-8") as f:
			f.write(text)
		os.chmod(tmp, path.stat().st_mode & 0o777)
		os.replace(tmp, path)
	except BaseException:
		if os.path.exists(tmp):
			os.unlink(tmp)
		raise


class StructuredDocument(Protocol):
	def read_field(self, path: Path, dotted: str) -> Any:
		...

	def read_text_field(self, path: Path, dotted: str) -> Optional[str]:
		...

	def write_fields(self, path: Path, fields: Mapping[str, Any]) -> None:
		...


class YamlRecordStore:
	"""Reads and rewrites single-document YAML records in place.

	Comments, key order and quoting of everything not written are kept by
	ruamel's round-trip mode. Every write is re-parsed and compared against
	the original with the written leaves removed; any other difference
	aborts the write with MalformedRecord.
	"""

	def _load(self, path: Path) -> Tuple[str, CommentedMap, YAML]:
		try:
			raw, docs, yaml = _read_all_yaml_docs(path)
		except (YAMLError, UnicodeDecodeError) as e:
			raise MalformedRecord(path, f"{type(e).__name__}: {e}") from e
		docs = [d for d in docs if d is not None]
		if len(docs) != 1:
			raise MalformedRecord(path, f"expected exactly one YAML document, found {len(docs)}")
		doc = docs[0]
		if not isinstance(doc, CommentedMap):
			raise MalformedRecord(path, "top-level YAML document is not a mapping")
		return raw, doc, yaml

	def read_field(self, path: Path, dotted: str) -> Any:
		_, doc, _ = self._load(path)
		return _get_path(doc, dotted)

	def read_text_field(self, path: Path, dotted: str) -> Optional[str]:
		raw, _, yaml = self._load(path)
		try:
			nodes = [n for n in yaml.compose_all(raw) if isinstance(n, MappingNode)]
		except YAMLError as e:
			raise MalformedRecord(path, f"{type(e).__name__}: {e}") from e
		if len(nodes) != 1:
			raise MalformedRecord(path, f"expected exactly one YAML mapping, found {len(nodes)}")
		return _scalar_text(nodes[0], dotted)

	def write_fields(self, path: Path, fields: Mapping[str, Any]) -> None:
		raw, doc, yaml = self._load(path)
		keys = list(fields.keys())
		before = _strip_paths(doc, keys)

		for dotted, value in fields.items():
			try:
				_set_path(doc, dotted, value)
			except ValueError as e:
				raise MalformedRecord(path, str(e)) from e

		try:
			new_txt = _dump_all_yaml_docs(yaml, [doc])
			reparsed = list(_mk_yaml(explicit_start=False).load_all(new_txt))
		except YAMLError as e:
			raise MalformedRecord(path, f"round-trip failed: {e}") from e

		if len(reparsed) != 1 or _strip_paths(reparsed[0], keys) != before:
			raise MalformedRecord(path, "round-trip would change fields outside the promotion anchor")
		for dotted, value in fields.items():
			if _get_path(reparsed[0], dotted) != value:
				raise MalformedRecord(path, f"round-trip lost the value of {dotted}")

		if new_txt != raw:
			_atomic_write(path, new_txt)
