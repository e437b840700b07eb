"""Runs the PII gate over the source tree and checks its detection rules."""

import importlib.util
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

_spec = importlib.util.spec_from_file_location(
    "gate_security_pii", ROOT / "scripts" / "gate_security_pii.py"
)
gate = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(gate)


def test_source_tree_passes():
    assert gate.check_tree(ROOT / "src") == []


def test_flags_raw_sender_in_log(tmp_path):
    bad = tmp_path / "bad.py"
    bad.write_text('logger.info("sent", extra={"to": event.sender_id})\n')

    errors = gate.check_file(bad)

    assert len(errors) == 1
    assert "sender_id" in errors[0]


def test_allows_hashed_sender(tmp_path):
    ok = tmp_path / "ok.py"
    ok.write_text(
        'logger.info("sent", extra={"extra_fields": safe_log_context(h=hash_identifier(event.sender_id))})\n'
    )

    assert gate.check_file(ok) == []


def test_ignores_keywords_inside_log_message(tmp_path):
    ok = tmp_path / "ok.py"
    ok.write_text('logger.info("no message in webhook payload")\n')

    assert gate.check_file(ok) == []


def test_flags_print(tmp_path):
    bad = tmp_path / "bad.py"
    bad.write_text('print("debug")\n')

    assert gate.check_file(bad)
