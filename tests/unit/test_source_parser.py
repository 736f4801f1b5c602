"""Tests for tree-sitter symbol extraction."""

import pytest

from context_server.analyzer import ProjectAnalyzer
from context_server.analyzer.source_parser import SourceParser, _razor_code_blocks, split_type_list
from context_server.config import AnalyzerFeatures
from context_server.context import ContextBuilder
from context_server.core.models import SymbolKind


@pytest.fixture(scope="module")
def parser():
    return SourceParser()


class TestSplitTypeList:

    @pytest.mark.parametrize(
        "text, expected",
        [
            (": ComponentBase, IDisposable", ["ComponentBase", "IDisposable"]),
            (": Base<Dictionary<string, int>>, IFoo", ["Base<Dictionary<string, int>>", "IFoo"]),
            ("(Base, Mixin, metaclass=Meta)", ["Base", "Mixin"]),
            ("extends Controller implements Auditable, Countable", ["Controller", "Auditable", "Countable"]),
            ("()", []),
        ],
    )
    def test_split(self, text, expected):
        assert split_type_list(text) == expected


class TestRazorCodeBlocks:

    def test_nested_braces(self):
        content = "<p>@count</p>\n@code {\n    void A() { if (x) { y(); } }\n}\n<p>after</p>"

        assert _razor_code_blocks(content) == ["\n    void A() { if (x) { y(); } }\n"]

    def test_multiple_blocks(self):
        content = "@code { int a; }\n@functions { int b; }"

        assert [block.strip() for block in _razor_code_blocks(content)] == ["int a;", "int b;"]

    def test_unterminated_block(self):
        assert _razor_code_blocks("@code { int a;") == [" int a;"]


class TestUnsupportedLanguages:

    def test_unknown_language_yields_nothing(self, parser):
        assert parser.parse_content("whatever", "cobol") == []
        assert not parser.supports("cobol")

    def test_unreadable_file(self, parser, tmp_path):
        assert parser.parse_file(tmp_path / "missing.cs", "csharp") == []


class TestCSharp:

    @pytest.fixture(autouse=True)
    def _grammar(self):
        pytest.importorskip("tree_sitter_c_sharp")

    def test_class_with_methods(self, parser):
        symbols = parser.parse_content(
            """
namespace Shop.Pages;

public class Counter : ComponentBase, IDisposable
{
    protected override void OnInitialized() { }

    public async void Increment() { await Task.Delay(1); }

    public async Task SaveAsync() { await Task.Delay(1); }

    public void Dispose() { }
}
""",
            "csharp",
        )

        counter = next(s for s in symbols if s.name == "Counter")
        assert counter.kind == SymbolKind.CLASS
        assert counter.base_types == ["ComponentBase", "IDisposable"]
        assert "public" in counter.modifiers

        methods = {child.name: child for child in counter.children}
        assert set(methods) == {"OnInitialized", "Increment", "SaveAsync", "Dispose"}
        assert all(m.kind == SymbolKind.METHOD for m in methods.values())
        assert methods["Increment"].is_async
        assert methods["Increment"].return_type == "void"
        assert methods["SaveAsync"].return_type == "Task"
        assert not methods["Dispose"].is_async

    def test_razor_component(self, parser):
        symbols = parser.parse_razor(
            "@page \"/\"\n<h1>Hi</h1>\n@code {\n    protected override void OnInitialized() { }\n}\n",
            "Index",
        )

        assert len(symbols) == 1
        component = symbols[0]
        assert component.name == "Index"
        assert component.kind == SymbolKind.COMPONENT
        assert component.base_types == ["ComponentBase"]
        assert component.line is None
        assert [child.name for child in component.children] == ["OnInitialized"]

    def test_razor_inherits(self, parser):
        symbols = parser.parse_razor(
            "@inherits LayoutComponentBase\n@code { }\n",
            "MainLayout",
        )

        assert symbols[0].base_types == ["LayoutComponentBase"]

    def test_blazor_project_suggestions(self, blazor_project):
        analyzer = ProjectAnalyzer(AnalyzerFeatures())

        project = analyzer.analyze(blazor_project)
        analysis = ContextBuilder().build_analysis(project)

        assert project.total_classes == 1
        assert [s.category for s in analysis.suggestions] == [
            "blazor-lifecycle",
            "async-patterns",
            "dependency-injection",
        ]
        assert analysis.suggestions[0].file == "Pages/Counter.razor"


class TestPython:

    @pytest.fixture(autouse=True)
    def _grammar(self):
        pytest.importorskip("tree_sitter_python")

    def test_classes_and_functions(self, parser):
        symbols = parser.parse_content(
            '''
class Repository(BaseRepository, Generic[T], metaclass=ABCMeta):
    async def fetch(self, key):
        def helper():
            pass
        return await self.db.get(key)

    def close(self):
        pass


async def main() -> None:
    pass
''',
            "python",
        )

        assert [s.name for s in symbols] == ["Repository", "main"]

        repository, main = symbols
        assert repository.base_types == ["BaseRepository", "Generic[T]"]
        assert [c.name for c in repository.children] == ["fetch", "close"]
        assert repository.children[0].kind == SymbolKind.METHOD
        assert repository.children[0].is_async

        assert main.kind == SymbolKind.FUNCTION
        assert main.is_async
        assert main.return_type == "None"
