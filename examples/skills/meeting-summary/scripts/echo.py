"""Acknowledge a saved summary. The invocation arguments arrive on stdin."""

import sys

payload = sys.stdin.read().strip() or "untitled"
first_line = payload.splitlines()[0]
print(f"Saved summary '{first_line[:60]}' ({len(payload)} characters)")
