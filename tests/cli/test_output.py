"""Tests for CLI output helpers."""

import json

from s3volume.cli._output import print_error, print_object, print_table, reply_row
from s3volume.keyexpr import KeyExpr
from s3volume.types import Reply, Timestamp, Value


def _reply(payload: bytes) -> Reply:
    return Reply(
        key=KeyExpr("a/b"),
        value=Value(payload=payload, encoding="text/plain"),
        timestamp=Timestamp(time=1_700_000_000 << 32, id=0xA1),
    )


def test_reply_row_text():
    row = reply_row(_reply(b"hello"))
    assert row["key"] == "a/b"
    assert row["value"] == "hello"
    assert row["timestamp"] == f"{1_700_000_000 << 32}/a1"
    assert row["time"].startswith("2023-11-14T22:13:20")


def test_reply_row_binary():
    row = reply_row(_reply(b"\xff\x00"))
    assert "value" not in row
    assert row["value_base64"] == "/wA="


def test_print_table_json(capsys):
    print_table(["key", "value"], [["a", "1"], ["b", "2"]], json_mode=True)
    out = capsys.readouterr().out
    data = json.loads(out)
    assert len(data) == 2
    assert data[0] == {"key": "a", "value": "1"}


def test_print_table_text(capsys):
    print_table(["key", "value"], [["a/b", "hello"]], json_mode=False)
    out = capsys.readouterr().out
    assert "key" in out
    assert "hello" in out


def test_print_table_empty(capsys):
    print_table(["key"], [], json_mode=False)
    out = capsys.readouterr().out
    assert out == ""


def test_print_object_json(capsys):
    print_object({"key": "val"}, json_mode=True)
    out = capsys.readouterr().out
    assert json.loads(out) == {"key": "val"}


def test_print_object_text(capsys):
    print_object({"key": "val"}, json_mode=False)
    out = capsys.readouterr().out
    assert "key: val" in out


def test_print_error(capsys):
    print_error("something broke")
    err = capsys.readouterr().err
    assert "Error: something broke" in err
