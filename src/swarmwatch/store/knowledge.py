"""Read-only view of the free-form knowledge directory."""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from swarmwatch.errors import InvalidArgumentError
from swarmwatch.protocol.models import epoch_to_iso

TOKEN_BUDGETS: dict[str, int | None] = {
    "codebase-insights.md": 2000,
    "patterns.md": 1000,
    "mistakes.md": 1000,
    "instruction-patches.md": None,
}
DOMAIN_TOKEN_BUDGET = 800
TOKENS_PER_WORD = 1.3


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def budget_for(name: str) -> int | None:
    if name in TOKEN_BUDGETS:
        return TOKEN_BUDGETS[name]
    if name.startswith("domain/"):
        return DOMAIN_TOKEN_BUDGET
    return None


@dataclass(frozen=True, slots=True)
class KnowledgeFile:
    name: str  # posix path relative to the knowledge dir
    size: int
    modified: float
    token_estimate: int
    budget: int | None

    @property
    def budget_percent(self) -> int | None:
        if not self.budget:
            return None
        return round(self.token_estimate / self.budget * 100)

    @property
    def over_budget(self) -> bool:
        pct = self.budget_percent
        return pct is not None and pct > 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": self.size,
            "modified": epoch_to_iso(self.modified),
            "token_estimate": self.token_estimate,
            "budget": self.budget,
            "budget_percent": self.budget_percent,
            "over_budget": self.over_budget,
        }


class KnowledgeStore:
    def __init__(self, knowledge_dir: str | Path) -> None:
        self.knowledge_dir = Path(knowledge_dir)

    def list(self) -> list[KnowledgeFile]:
        if not self.knowledge_dir.is_dir():
            return []
        out: list[KnowledgeFile] = []
        for path in sorted(self.knowledge_dir.rglob("*")):
            if not path.is_file() or path.name == ".gitkeep":
                continue
            rel = path.relative_to(self.knowledge_dir).as_posix()
            try:
                stat = path.stat()
                text = path.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue
            out.append(KnowledgeFile(
                name=rel,
                size=stat.st_size,
                modified=stat.st_mtime,
                token_estimate=estimate_tokens(text),
                budget=budget_for(rel),
            ))
        return out

    def read(self, name: str) -> str | None:
        if not isinstance(name, str) or not name.strip():
            raise InvalidArgumentError("Knowledge file name is required")
        base = self.knowledge_dir.resolve()
        target = (self.knowledge_dir / name).resolve()
        if not target.is_relative_to(base):
            raise InvalidArgumentError(f"Knowledge path escapes the knowledge directory: {name!r}")
        try:
            return target.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None
