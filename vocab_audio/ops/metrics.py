"""In-process counters for the relay and the resolution engine.

Counters are addressed by a dotted name with optional labels appended as
extra segments, so ``counter("chain.resolved", kind="proxy")`` and
``counter("chain.resolved.proxy")`` are the same counter.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


def counter_key(name: str, **labels: str) -> str:
    if not labels:
        return name
    suffix = ".".join(str(labels[key]) for key in sorted(labels))
    return f"{name}.{suffix}"


@dataclass
class Counter:
    name: str
    value: int = 0

    def inc(self, amount: int = 1) -> None:
        self.value += amount


class MetricsRegistry:
    def __init__(self) -> None:
        self.counters: Dict[str, Counter] = {}

    def counter(self, name: str, **labels: str) -> Counter:
        key = counter_key(name, **labels)
        if key not in self.counters:
            self.counters[key] = Counter(name=key)
        return self.counters[key]

    def value(self, name: str, **labels: str) -> int:
        counter = self.counters.get(counter_key(name, **labels))
        return counter.value if counter else 0

    def total(self, prefix: str) -> int:
        """Sum every counter under ``prefix`` (labels included)."""

        return sum(
            counter.value
            for key, counter in self.counters.items()
            if key == prefix or key.startswith(f"{prefix}.")
        )

    def snapshot(self) -> Dict[str, int]:
        return {name: counter.value for name, counter in sorted(self.counters.items())}
