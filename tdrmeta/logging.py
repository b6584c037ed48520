from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List

from .errors import CyclicRenderGuardTriggered

if TYPE_CHECKING:
    from .graph import TypeGraph


@dataclass
class BackrefLogger:
    """Buffers one line per back-reference emitted by the renderer."""

    destination: Path

    def __post_init__(self) -> None:
        self._lines: List[str] = []
        self.count = 0

    def record(self, event: CyclicRenderGuardTriggered, graph: "TypeGraph") -> None:
        source = graph.get(event.source)
        target = graph.get(event.target)
        walk = " > ".join(graph.type_name(type_id) or f"#{type_id}" for type_id in event.path)
        self.count += 1
        header = (
            f"#{self.count:04d} backref {target.name!r} (id={target.id}) "
            f"from {source.kind.value} id={source.id}"
        )
        if target.offset >= 0:
            header += f" meta=0x{target.offset:04X}"
        self._lines.append(header)
        self._lines.append(f"       path: {walk}")

    def flush(self) -> None:
        if not self._lines:
            return
        self.destination.parent.mkdir(parents=True, exist_ok=True)
        text = "\n".join(self._lines) + "\n"
        self.destination.write_text(text, encoding="utf-8")
