"""Local stand-in agent for CLI integration tests.

Accepts the argv shapes the builders produce, reads the prompt from
``--prompt``, ``-p PROMPT``, a trailing positional argument or stdin, and
appends a marker line to every ``Target file:`` / ``FILE:`` path in it.

Behavior is scripted through environment variables:

- ``AGENT_BATCH_ECHO_MARKER``: line appended to each target file.
- ``AGENT_BATCH_ECHO_FAIL``: when set, print it to stderr and exit non-zero
  without touching files.
- ``AGENT_BATCH_ECHO_EXIT_CODE``: exit code for the scripted failure.
- ``AGENT_BATCH_ECHO_LOG``: file that receives one line per invocation.
"""

from __future__ import annotations

import argparse
import os
import re
import sys
from pathlib import Path

DEFAULT_MARKER = "processed by echo agent"
TARGET_PATTERN = re.compile(r"^(?:Target file|FILE): (.+)$", re.MULTILINE)


def main(argv: list[str] | None = None) -> int:
    """Edit the target files named in the prompt."""

    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--prompt", default=None)
    parser.add_argument("-p", dest="print_prompt", nargs="?", const="", default=None)
    parser.add_argument("--model", "-m", default=None)
    parser.add_argument("--output-format", default=None)
    parser.add_argument("-c", dest="config", action="append", default=[])
    parser.add_argument("rest", nargs="*")
    args, _ = parser.parse_known_args(argv)

    if args.version:
        print("echo-agent 1.0")
        return 0
    if args.help:
        print("usage: echo-agent [--prompt PROMPT] [PROMPT]")
        return 0

    prompt = _read_prompt(args.prompt or args.print_prompt, args.rest)
    log_path = os.getenv("AGENT_BATCH_ECHO_LOG")
    targets = TARGET_PATTERN.findall(prompt)
    if log_path:
        with Path(log_path).open("a", encoding="utf-8") as handle:
            handle.write(" ".join(targets) + "\n")

    failure = os.getenv("AGENT_BATCH_ECHO_FAIL")
    if failure:
        print(failure, file=sys.stderr)
        return int(os.getenv("AGENT_BATCH_ECHO_EXIT_CODE", "1"))

    marker = os.getenv("AGENT_BATCH_ECHO_MARKER", DEFAULT_MARKER)
    for target in targets:
        path = Path(target.strip())
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"{marker}\n")
        print(f"edited {path}")
    return 0


def _read_prompt(option: str | None, rest: list[str]) -> str:
    if option:
        return option
    positional = [value for value in rest if value not in {"exec", "-"}]
    if positional:
        return positional[-1]
    if sys.stdin is not None and not sys.stdin.isatty():
        return sys.stdin.read()
    return ""


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
