#!/usr/bin/env python3
"""Security & PII gate for runtime code under src/.

Fails if:
- print( appears in runtime code
- a logger call line references note content, sender identity or raw
  request bodies without going through a redaction helper

Usage:
    python scripts/gate_security_pii.py [SRC_DIR]
"""

import re
import sys
from pathlib import Path

# Identifiers that carry visitor PII or raw payloads
SENSITIVE_KEYWORDS = (
    "note_text",
    "message.text",
    "sender_name",
    "user_email",
    "audio.data",
    "request.body",
    "request.json",
    "response.text",
    "payload",
)

PRINT_PATTERN = re.compile(r"\bprint\s*\(")

LOGGER_CALL_PATTERN = re.compile(
    r"logger\.(debug|info|warning|error|critical|exception)\s*\("
)

REDACTION_PATTERNS = (
    "safe_log_context",
    "redact_value",
    "redact_string",
    "hash_identifier",
)


def _code_part(line: str) -> str:
    """Drop an inline comment (naive: ignores '#' inside strings)."""
    return line.split("#", 1)[0]


def check_file(filepath: Path) -> list[str]:
    """Check a single file. Returns a list of violation messages."""
    try:
        content = filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return []

    errors: list[str] = []
    for lineno, line in enumerate(content.splitlines(), start=1):
        if line.lstrip().startswith("#"):
            continue
        code = _code_part(line)

        if PRINT_PATTERN.search(code):
            errors.append(f"{filepath}:{lineno}: print() not allowed in runtime code")

        if not LOGGER_CALL_PATTERN.search(code):
            continue
        if any(rp in code for rp in REDACTION_PATTERNS):
            continue
        lowered = code.lower()
        for keyword in SENSITIVE_KEYWORDS:
            if keyword in lowered:
                errors.append(
                    f"{filepath}:{lineno}: logger call with '{keyword}' "
                    "must use redaction (safe_log_context/redact_value)"
                )

    return errors


def check_tree(src_dir: Path) -> list[str]:
    """Check every .py file below src_dir."""
    all_errors: list[str] = []
    for pyfile in sorted(src_dir.rglob("*.py")):
        all_errors.extend(check_file(pyfile))
    return all_errors


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    src_dir = Path(args[0]) if args else Path(__file__).resolve().parent.parent / "src"

    if not src_dir.exists():
        sys.stderr.write(f"Error: {src_dir} not found\n")
        return 1

    all_errors = check_tree(src_dir)
    if all_errors:
        sys.stderr.write("PII gate FAILED - violations found:\n")
        for err in all_errors:
            sys.stderr.write(f"  {err}\n")
        return 1

    sys.stdout.write("PII gate PASSED\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
