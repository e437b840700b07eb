#!/usr/bin/env python3
"""Security & PII gate for runtime code under src/.

Fails if:
- print( found in runtime code
- A logger call passes a sender id, message text, reply or raw webhook
  payload without going through redaction (safe_log_context/hash_identifier)

Only code is checked: string literals (log messages) are ignored.

Usage:
    python scripts/gate_security_pii.py
"""

import re
import sys
from pathlib import Path

# Variable names that carry phone numbers or user content
SENSITIVE_KEYWORDS = (
    "payload",
    "body_bytes",
    "sender_id",
    "user_id",
    "phone",
    "text_payload",
    "reply",
    "content",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

STRING_LITERAL_PATTERN = re.compile(r"[rbfRBF]*(\"(?:[^\"\\]|\\.)*\"|'(?:[^'\\]|\\.)*')")

REDACTION_PATTERNS = (
    "safe_log_context",
    "hash_identifier",
    "redact_value",
    "redact_string",
)


def _code_only(line: str) -> str:
    code = STRING_LITERAL_PATTERN.sub('""', line)
    return code.split("#", 1)[0]


def check_file(filepath: Path) -> list[str]:
    """Check a single file for violations. Returns list of error messages."""
    errors = []
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []

    for lineno, line in enumerate(content.splitlines(), start=1):
        if line.lstrip().startswith("#"):
            continue

        code = _code_only(line)

        if PRINT_PATTERN.search(code):
            errors.append(f"{filepath}:{lineno}: print() not allowed in runtime code")

        if LOGGER_CALL_PATTERN.search(code):
            code_lower = code.lower()
            has_redaction = any(rp in code for rp in REDACTION_PATTERNS)
            for keyword in SENSITIVE_KEYWORDS:
                if keyword in code_lower and not has_redaction:
                    errors.append(
                        f"{filepath}:{lineno}: logger call with '{keyword}' "
                        "must use redaction (safe_log_context/hash_identifier)"
                    )

    return errors


def check_tree(src_dir: Path) -> list[str]:
    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))
    return all_errors


def main() -> int:
    """Run gate check on src directory."""
    src_dir = Path("src")

    if not src_dir.exists():
        src_dir = Path(__file__).parent.parent / "src"

    if not src_dir.exists():
        sys.stderr.write("Error: src directory not found\n")
        return 1

    all_errors = check_tree(src_dir)

    if all_errors:
        sys.stderr.write("PII gate FAILED - violations found:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate PASSED - no violations found\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
