"""Tests for gitignore-style exclusion rules."""

from __future__ import annotations

from smartsync.config_schema import SyncConfig
from smartsync.sync.ignore import ExclusionRules


class TestExclusionRules:
    def test_directory_pattern_only_matches_containers(self):
        rules = ExclusionRules(patterns=["build/"])

        assert rules.is_excluded("build", is_container=True)
        assert not rules.is_excluded("build")
        assert rules.is_excluded("build/out.md")

    def test_glob_and_negation(self):
        rules = ExclusionRules(patterns=["*.exe", "!keep.exe"])

        assert rules.is_excluded("tools/run.exe")
        assert not rules.is_excluded("keep.exe")
        assert not rules.is_excluded("notes.md")

    def test_anchored_pattern(self):
        rules = ExclusionRules(patterns=["/root-only.md"])

        assert rules.is_excluded("root-only.md")
        assert not rules.is_excluded("sub/root-only.md")

    def test_hidden_dir(self):
        rules = ExclusionRules(hidden_dir=".obsidian")

        assert rules.is_excluded(".obsidian", is_container=True)
        assert rules.is_excluded(".obsidian/app.json")

    def test_override_disables_user_patterns(self):
        rules = ExclusionRules(
            patterns=["*.exe"], override=True, internal=["/.trash/"]
        )

        assert not rules.is_excluded("run.exe")
        assert rules.is_excluded(".trash", is_container=True)
        assert rules.is_excluded(".trash/old.md")

    def test_blank_patterns_are_skipped(self):
        rules = ExclusionRules(patterns=["", "   ", "*.tmp"])

        assert rules.patterns == ["*.tmp"]

    def test_filter(self):
        rules = ExclusionRules(patterns=["*.exe"])

        assert rules.filter({"a.md": "A", "b.exe": "B"}) == {"a.md": "A"}


class TestFromConfig:
    def test_defaults(self):
        rules = ExclusionRules.from_config(SyncConfig())

        assert rules.is_excluded("setup.exe")
        assert not rules.is_excluded(".obsidian/app.json")

    def test_skip_hidden_uses_config_dir(self):
        rules = ExclusionRules.from_config(
            SyncConfig(skip_hidden=True, config_dir="/.config-dir/")
        )

        assert rules.is_excluded(".config-dir/app.json")

    def test_internal_patterns_survive_override(self):
        rules = ExclusionRules.from_config(
            SyncConfig(exclusions_override=True),
            internal=["/.smartsync/prevdata.json"],
        )

        assert rules.is_excluded(".smartsync/prevdata.json")
        assert not rules.is_excluded("setup.exe")
