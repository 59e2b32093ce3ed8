"""Execution orchestration for external AI coding-assistant CLIs.

Why not a task queue?
~~~~~~~~~~~~~~~~~~~~~
Every run is a single process working through a fixed list of files. State
lives only for the duration of one invocation: the modification snapshot, the
error budget, and the in-flight child processes. The hard parts are at the
integration boundary with the external CLIs (claude, codex, gemini, copilot,
cursor, qwen):

- Per-vendor argv conventions (piped stdin vs. positional prompt, native
  context flags vs. inlined context, native reasoning flag vs. prompt suffix).
- Text-based failure classification driving a backoff retry policy, because
  the wrapped tools only report errors as free-form stdout/stderr.
- A git-backed modification gate that makes re-running a batch idempotent.
- A cross-batch error budget that halts dispatch once quota or general
  failures pile up.

A bounded thread pool plus a coordinator loop covers the concurrency; a broker
would add an operational dependency with nothing to persist.
"""
