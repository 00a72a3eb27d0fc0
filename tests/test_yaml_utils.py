from pathlib import Path

import pytest
from ruamel.yaml.comments import CommentedMap

from gitops_promote.errors import MalformedRecord
from gitops_promote.yaml_utils import YamlRecordStore, _detect_seq_indent, _get_path, _set_path

from git_helpers import record_yaml


def _write(tmp_path: Path, text: str) -> Path:
	path = tmp_path / "values.yaml"
	path.write_text(text, encoding="utf-8")
	return path


def test_get_and_set_path_create_intermediate_maps() -> None:
	# Intended behavior: dotted writes create missing maps and keep existing key order.
	doc = CommentedMap()
	doc["replicaCount"] = 1
	doc["image"] = CommentedMap({"repository": "r", "tag": "t"})
	_set_path(doc, "appMetadata.promotionAnchor.gitSHA", "abcd1234")
	_set_path(doc, "image.tag", "v2")

	assert list(doc.keys()) == ["replicaCount", "image", "appMetadata"]
	assert _get_path(doc, "appMetadata.promotionAnchor.gitSHA") == "abcd1234"
	assert _get_path(doc, "image.tag") == "v2"
	assert _get_path(doc, "image.missing") is None
	assert _get_path(doc, "image.tag.deeper") is None


def test_set_path_replaces_null_parent_and_rejects_scalar_parent() -> None:
	doc = CommentedMap({"appMetadata": CommentedMap({"promotionAnchor": None})})
	_set_path(doc, "appMetadata.promotionAnchor.fromEnv", "dev")
	assert doc["appMetadata"]["promotionAnchor"]["fromEnv"] == "dev"

	doc = CommentedMap({"image": "ghcr.io/example/app:1.0"})
	with pytest.raises(ValueError):
		_set_path(doc, "image.tag", "v2")


def test_detect_seq_indent() -> None:
	assert _detect_seq_indent("hosts:\n  - a\n") == (4, 2)
	assert _detect_seq_indent("hosts:\n- a\n") == (2, 0)
	assert _detect_seq_indent("a: 1\n") == (4, 2)


def test_write_fields_preserves_everything_else(tmp_path: Path) -> None:
	# Intended behavior: only the written leaves change; comments, quoting and other fields survive.
	raw = record_yaml("staging", tag="v1", replicas=2)
	path = _write(tmp_path, raw)
	store = YamlRecordStore()

	store.write_fields(path, {"image.tag": "v2", "appMetadata.promotionAnchor.gitSHA": "a12a8eb3"})
	new = path.read_text(encoding="utf-8")

	assert new == raw.replace('tag: "v1"', 'tag: "v2"').replace('gitSHA: ""', 'gitSHA: "a12a8eb3"')
	assert store.read_field(path, "image.tag") == "v2"


def test_write_fields_adds_missing_anchor_block(tmp_path: Path) -> None:
	raw = """\
image:
  repository: ghcr.io/example/hello-web
  tag: v1
service:
  port: 8080
"""
	path = _write(tmp_path, raw)
	store = YamlRecordStore()
	store.write_fields(path, {
		"appMetadata.lastPromotedTag": "v2",
		"appMetadata.promotionAnchor.gitSHA": "a12a8eb3",
		"appMetadata.promotionAnchor.promotedAt": "2026-10-16T12:00:00Z",
		"appMetadata.promotionAnchor.fromEnv": "dev",
	})

	assert store.read_field(path, "appMetadata.promotionAnchor.fromEnv") == "dev"
	assert store.read_field(path, "appMetadata.promotionAnchor.promotedAt") == "2026-10-16T12:00:00Z"
	assert store.read_field(path, "service.port") == 8080
	text = path.read_text(encoding="utf-8")
	assert text.index("image:") < text.index("appMetadata:") < text.index("service:")


def test_numeric_looking_tag_stays_a_string(tmp_path: Path) -> None:
	path = _write(tmp_path, "image:\n  repository: r\n  tag: v1\n")
	store = YamlRecordStore()
	store.write_fields(path, {"image.tag": "1.10"})
	assert store.read_field(path, "image.tag") == "1.10"


def test_read_text_field_keeps_source_spelling(tmp_path: Path) -> None:
	# Intended behavior: unquoted numeric scalars come back exactly as written.
	path = _write(tmp_path, "image:\n  repository: ghcr.io/example/hello-web\n  tag: 1.10\n  digest: 010\nextra:\n  pinned: true\n  empty:\n  list: [a]\n")
	store = YamlRecordStore()
	assert store.read_field(path, "image.tag") == 1.1
	assert store.read_text_field(path, "image.tag") == "1.10"
	assert store.read_text_field(path, "image.digest") == "010"
	assert store.read_text_field(path, "image.repository") == "ghcr.io/example/hello-web"
	assert store.read_text_field(path, "extra.pinned") is None
	assert store.read_text_field(path, "extra.empty") is None
	assert store.read_text_field(path, "extra.list") is None
	assert store.read_text_field(path, "image") is None
	assert store.read_text_field(path, "image.missing") is None


def test_malformed_records(tmp_path: Path) -> None:
	# Intended behavior: unparsable, multi-document and non-mapping records are MalformedRecord.
	store = YamlRecordStore()

	path = _write(tmp_path, "image: [unclosed\n")
	with pytest.raises(MalformedRecord):
		store.read_field(path, "image.tag")

	path = _write(tmp_path, "a: 1\n---\nb: 2\n")
	with pytest.raises(MalformedRecord, match="exactly one"):
		store.write_fields(path, {"image.tag": "v2"})

	path = _write(tmp_path, "- a\n- b\n")
	with pytest.raises(MalformedRecord, match="not a mapping"):
		store.read_field(path, "image.tag")

	raw = "image: ghcr.io/example/app:1.0\n"
	path = _write(tmp_path, raw)
	with pytest.raises(MalformedRecord):
		store.write_fields(path, {"image.tag": "v2"})
	assert path.read_text(encoding="utf-8") == raw
