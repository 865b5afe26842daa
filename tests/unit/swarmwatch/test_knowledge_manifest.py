"""Tests for knowledge files and the launcher manifest."""

from __future__ import annotations

from pathlib import Path

import pytest

from swarmwatch.errors import InvalidArgumentError
from swarmwatch.store.knowledge import KnowledgeStore, budget_for, estimate_tokens
from swarmwatch.store.manifest import read_manifest


class TestKnowledge:
    def test_estimate_tokens(self) -> None:
        assert estimate_tokens("") == 0
        assert estimate_tokens("one two three") == 4
        assert estimate_tokens("  spaced\n\nout\twords ") == 4

    @pytest.mark.parametrize(
        ("name", "budget"),
        [
            ("codebase-insights.md", 2000),
            ("patterns.md", 1000),
            ("mistakes.md", 1000),
            ("instruction-patches.md", None),
            ("domain/payments.md", 800),
            ("scratch.md", None),
        ],
    )
    def test_budgets(self, name: str, budget: int | None) -> None:
        assert budget_for(name) == budget

    def test_list_is_recursive_and_skips_gitkeep(self, tmp_path: Path) -> None:
        (tmp_path / "domain").mkdir()
        (tmp_path / "domain" / "x.md").write_text("a b", encoding="utf-8")
        (tmp_path / "mistakes.md").write_text("c", encoding="utf-8")
        (tmp_path / ".gitkeep").touch()
        (tmp_path / "domain" / ".gitkeep").touch()
        files = KnowledgeStore(tmp_path).list()
        assert [f.name for f in files] == ["domain/x.md", "mistakes.md"]
        assert files[0].to_dict()["budget_percent"] == 0
        assert not files[1].over_budget

    def test_missing_dir(self, tmp_path: Path) -> None:
        store = KnowledgeStore(tmp_path / "none")
        assert store.list() == []
        assert store.read("patterns.md") is None

    def test_read_rejects_empty_name(self, tmp_path: Path) -> None:
        with pytest.raises(InvalidArgumentError):
            KnowledgeStore(tmp_path).read("")


class TestManifest:
    def test_absent_or_malformed(self, tmp_path: Path) -> None:
        assert read_manifest(tmp_path / "manifest.json") is None
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        assert read_manifest(bad) is None
        arr = tmp_path / "arr.json"
        arr.write_text("[1, 2]", encoding="utf-8")
        assert read_manifest(arr) is None

    def test_agents_parsed_with_extras(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.json"
        path.write_text(
            '{"project": "demo", "agents": ['
            '{"id": "worker-1", "role": "worker", "group": "workers", "model": "opus",'
            ' "command_fresh": "claude", "command_continue": "claude --continue"},'
            '{"role": "no id"}, "junk"]}',
            encoding="utf-8",
        )
        manifest = read_manifest(path)
        assert manifest is not None
        assert [a.id for a in manifest.agents] == ["worker-1"]
        worker = manifest.agents[0]
        assert worker.extra == {"model": "opus"}
        assert worker.command_continue == "claude --continue"
        assert manifest.raw["project"] == "demo"
