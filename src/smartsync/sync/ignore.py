"""Gitignore-style exclusion rules shared by the local and remote scans.

Patterns follow gitignore semantics (``pathspec.GitIgnoreSpec``), so
``build/`` only matches directories and ``!keep.md`` re-includes a path.
Directory paths are matched with a trailing slash, the way git does.
"""

from __future__ import annotations

from pathspec import GitIgnoreSpec

from .models import FileList


class ExclusionRules:
    """Decide which vault paths take part in a sync.

    Args:
        patterns: Ordered gitignore-style patterns.
        override: Disable filtering by *patterns* and *hidden_dir*.
        hidden_dir: Extra directory excluded as a whole, typically the
            hidden application config directory. ``None`` to keep it.
        internal: Patterns for the tool's own files (snapshot, trash).
            These stay excluded even with *override*.
    """

    def __init__(
        self,
        patterns: list[str] | None = None,
        override: bool = False,
        hidden_dir: str | None = None,
        internal: list[str] | None = None,
    ) -> None:
        lines = [p for p in (patterns or []) if p.strip()]
        if hidden_dir:
            lines.append(f"{hidden_dir.strip('/')}/")
        self.patterns = lines
        self.override = override
        self._spec = GitIgnoreSpec.from_lines(lines)
        self._internal = GitIgnoreSpec.from_lines(internal or [])

    @classmethod
    def from_config(cls, sync_config, internal: list[str] | None = None) -> ExclusionRules:
        """Build rules from a ``SyncConfig`` section."""
        return cls(
            patterns=list(sync_config.ignore_patterns),
            override=sync_config.exclusions_override,
            hidden_dir=sync_config.config_dir if sync_config.skip_hidden else None,
            internal=internal,
        )

    def _matches(self, path: str) -> bool:
        if self._internal.match_file(path):
            return True
        return not self.override and self._spec.match_file(path)

    def is_excluded(self, path: str, is_container: bool = False) -> bool:
        if is_container and not path.endswith("/"):
            path += "/"
        return self._matches(path)

    def filter(self, files: FileList) -> FileList:
        """Return the entries of *files* that are not excluded."""
        return {p: d for p, d in files.items() if not self._matches(p)}
