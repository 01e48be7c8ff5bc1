"""Tests for the tree-sitter parsing layer."""

from __future__ import annotations

from slotsugar.parser import Parser, ParserFactory, TreeSitterParserFactory


class _FakeTree:
    class _Root:
        has_error = False

    root_node = _Root()


class _RecordingParser:
    def __init__(self):
        self.parsed: list[bytes] = []

    def parse(self, source: bytes):
        self.parsed.append(source)
        return _FakeTree()


class _RecordingFactory(ParserFactory):
    def __init__(self):
        self.languages: list[str] = []
        self.parser = _RecordingParser()

    def get_parser(self, language: str):
        self.languages.append(language)
        return self.parser


class TestParser:
    def test_delegates_to_factory(self):
        factory = _RecordingFactory()
        tree = Parser(factory).parse("slot(x);", "javascript")
        assert isinstance(tree, _FakeTree)
        assert factory.languages == ["javascript"]
        assert factory.parser.parsed == [b"slot(x);"]

    def test_tree_sitter_factory_parses_javascript(self):
        tree = Parser(TreeSitterParserFactory()).parse("let x = 1;", "javascript")
        assert tree.root_node.type == "program"
        assert not tree.root_node.has_error

    def test_syntax_errors_are_kept_in_the_tree(self):
        tree = Parser(TreeSitterParserFactory()).parse("let = ;", "javascript")
        assert tree.root_node.has_error
