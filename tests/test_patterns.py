from __future__ import annotations

import os

import pytest

from workbench.tools.patterns import (
    IgnorePatternCache,
    load_ignore_patterns,
    matches_ignore_pattern,
    matches_path_pattern,
    matches_simple_pattern,
    parse_ignore_file,
)


class TestSimplePattern:
    def test_star_extension(self):
        assert matches_simple_pattern("a.ts", "*.ts")
        assert not matches_simple_pattern("a.tsx", "*.ts")

    def test_question_mark_single_char(self):
        assert matches_simple_pattern("a1.py", "a?.py")
        assert not matches_simple_pattern("a12.py", "a?.py")

    def test_basename_matched(self):
        assert matches_simple_pattern("src/deep/test_x.py", "test_*")

    def test_regex_metacharacters_literal(self):
        assert matches_simple_pattern("a+b.txt", "a+b.txt")
        assert not matches_simple_pattern("aab.txt", "a+b.txt")

    def test_case_insensitive_flag(self):
        assert not matches_simple_pattern("README.MD", "*.md")
        assert matches_simple_pattern("README.MD", "*.md", case_insensitive=True)


class TestPathPattern:
    def test_double_star_crosses_directories(self):
        assert matches_path_pattern("src/sub/a.ts", "**/*.ts")

    def test_single_star_stops_at_separator(self):
        assert not matches_path_pattern("src/sub/a.ts", "src/*.ts")
        assert matches_path_pattern("src/a.ts", "src/*.ts")

    def test_basename_fallback(self):
        assert matches_path_pattern("src/sub/a.ts", "*.ts")


class TestIgnorePatterns:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("node_modules/lib/index.js", True),
            ("build/out.o", True),
            ("debug.log", True),
            ("src/app.log", True),
            (".env", True),
            ("src/main.py", False),
        ],
    )
    def test_matching(self, path, expected):
        patterns = ["# comment", "", "node_modules/", "build/", "*.log", ".env"]
        assert matches_ignore_pattern(path, patterns) is expected

    def test_parse_skips_blank_and_comments(self):
        assert parse_ignore_file("# c\n\n*.pyc\n  dist/  \n") == ["*.pyc", "dist/"]

    def test_missing_file_is_empty(self, tmp_path):
        assert load_ignore_patterns(tmp_path) == []


class TestIgnorePatternCache:
    def test_reloads_when_mtime_changes(self, tmp_path):
        ignore = tmp_path / ".gitignore"
        ignore.write_text("*.log\n", encoding="utf-8")
        cache = IgnorePatternCache()
        assert cache.get(tmp_path) == ["*.log"]

        ignore.write_text("*.tmp\n", encoding="utf-8")
        stat = ignore.stat()
        os.utime(ignore, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        assert cache.get(tmp_path) == ["*.tmp"]

    def test_cached_when_unchanged(self, tmp_path):
        (tmp_path / ".gitignore").write_text("*.log\n", encoding="utf-8")
        cache = IgnorePatternCache()
        assert cache.get(tmp_path) is cache.get(tmp_path)
