"""Small text and number helpers."""

from __future__ import annotations


def fib(n: int) -> int:
    """Return the n-th Fibonacci number; values below 2 are returned as they are."""
    if n < 2:
        return n
    previous, current = 0, 1
    for _ in range(n - 1):
        previous, current = current, previous + current
    return current


def split(s: str, sep: str) -> list[str]:
    """Split ``s`` on every occurrence of ``sep``, dropping an empty trailing piece."""
    if not sep:
        raise ValueError("separator must not be empty")
    parts = s.split(sep)
    if parts[-1] == "":
        parts.pop()
    return parts