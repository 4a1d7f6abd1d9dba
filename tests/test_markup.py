"""Tests for the HTML, JSON, XML, delimited and plain text converters."""

import io

import pytest

from segmark.converters.delimited import CsvConverter
from segmark.converters.structured import JsonConverter, XmlConverter, format_element_name
from segmark.converters.text import PlainTextConverter
from segmark.converters.web import convert_html_string
from segmark.core.exceptions import FileConversionError
from segmark.detection.stream_info import StreamInfo
from segmark.models import SegmentType

HTML_PAGE = b"""<html>
<head><title>Guide</title><script>track()</script><style>p { color: red; }</style></head>
<body>
<h1>Welcome</h1>
<!-- hidden note -->
<p>Some <strong>bold</strong> text.</p>
<ul><li>One</li><li>Two</li></ul>
<table>
<tr><th>Name</th><th colspan="2">Span</th></tr>
<tr><td>a</td><td>b</td><td>c</td></tr>
</table>
<pre><code class="language-python">print(1)</code></pre>
</body>
</html>"""


class TestHtmlToMarkdown:
    """HTML cleanup and Markdown rendering."""

    def test_structure(self):
        """Headings, emphasis, lists and code blocks are converted."""
        converted = convert_html_string(HTML_PAGE.decode("utf-8"))

        assert converted.title == "Guide"
        assert "# Welcome" in converted.markdown
        assert "Some **bold** text." in converted.markdown
        assert "- One" in converted.markdown
        assert "```python\nprint(1)\n```" in converted.markdown

    def test_scripts_and_comments_removed(self):
        """Non-content markup never reaches the output."""
        converted = convert_html_string(HTML_PAGE.decode("utf-8"))

        assert "track()" not in converted.markdown
        assert "color: red" not in converted.markdown
        assert "hidden note" not in converted.markdown

    def test_colspan_expanded(self):
        """Spanning header cells are repeated across their columns."""
        converted = convert_html_string(HTML_PAGE.decode("utf-8"))

        assert "| Name | Span | Span |\n| --- | --- | --- |\n| a | b | c |" in converted.markdown
        assert converted.tables == [[["Name", "Span", "Span"], ["a", "b", "c"]]]


@pytest.mark.asyncio
class TestHtmlConverter:
    """HTML documents through the registry."""

    async def test_section_segment(self, converter):
        """The page becomes one SECTION segment titled by <title>."""
        result = await converter.convert(HTML_PAGE, StreamInfo(file_name="guide.html"))

        assert result.metadata["converter"] == "html"
        assert len(result.segments) == 1
        assert result.segments[0].type == SegmentType.SECTION
        assert result.title == "Guide"
        assert len(result.artifacts.tables) == 1
        assert 'tables: "1"' in result.markdown


@pytest.mark.asyncio
class TestJsonConverter:
    """JSON and JSON Lines."""

    async def test_pretty_printed(self, converter):
        """Documents are re-indented inside a fenced block."""
        result = await converter.convert(b'{"name": "segmark", "tags": ["a"]}', StreamInfo(file_name="config.json"))

        assert result.metadata["converter"] == "json"
        assert result.title == "config"
        assert result.segments[0].markdown == (
            '# config\n\n```json\n{\n  "name": "segmark",\n  "tags": [\n    "a"\n  ]\n}\n```'
        )

    async def test_invalid_json(self, context):
        """Malformed documents raise a conversion error."""
        with pytest.raises(FileConversionError):
            await JsonConverter().convert(io.BytesIO(b'{"a": }'), StreamInfo(file_name="bad.json"), context)

    async def test_json_lines(self, context):
        """Each line gets its own block; invalid lines are kept verbatim."""
        data = b'{"a": 1}\n\nnot json\n'
        result = await JsonConverter().convert(io.BytesIO(data), StreamInfo(file_name="events.jsonl"), context)

        assert result.segments[0].markdown == (
            "# events\n\n"
            '## Line 1\n\n```json\n{\n  "a": 1\n}\n```\n\n'
            "## Line 3 (Invalid JSON)\n\n```\nnot json\n```"
        )


@pytest.mark.asyncio
class TestXmlConverter:
    """XML structure summaries."""

    async def test_element_tree(self, context):
        """Elements become headings, attributes become bullet lists."""
        data = b'<catalog><title>Books</title><book id="1"><bookTitle>Dune</bookTitle></book></catalog>'

        result = await XmlConverter().convert(io.BytesIO(data), StreamInfo(file_name="catalog.xml"), context)

        assert result.title == "Books"
        assert result.segments[0].markdown == (
            "# Books\n\n## Catalog\n\n### Title\n\nBooks\n\n### Book\n\n- **Id**: 1\n\n#### Book Title\n\nDune"
        )

    async def test_deep_elements_use_bold_labels(self, context):
        """Nesting past four levels switches from headings to bold labels."""
        data = b"<a><b><c><d><e>deep</e></d></c></b></a>"

        result = await XmlConverter().convert(io.BytesIO(data), StreamInfo(file_name="nested.xml"), context)

        assert "##### D" in result.segments[0].markdown
        assert "**E**\n\ndeep" in result.segments[0].markdown


@pytest.mark.asyncio
class TestCsvConverter:
    """Delimited files."""

    async def test_comma_separated(self, converter):
        """Rows become a Markdown table; blanks are not filled."""
        result = await converter.convert(b"name,age\nAda,36\nGrace,\n", StreamInfo(file_name="people.csv"))

        assert result.metadata["converter"] == "csv"
        segment = result.segments[0]
        assert segment.type == SegmentType.TABLE
        assert segment.markdown.startswith("| name | age |\n| --- | --- |\n| Ada | 36 |")
        assert result.artifacts.tables[0].rows[2] == ["Grace", ""]
        assert result.title == "people"

    async def test_tab_separated(self, context):
        """TSV descriptors use tabs."""
        result = await CsvConverter().convert(io.BytesIO(b"a\tb\n1\t2\n"), StreamInfo(file_name="scores.tsv"), context)
        assert result.segments[0].markdown == "| a | b |\n| --- | --- |\n| 1 | 2 |"

    async def test_sniffed_delimiter(self, context):
        """Other delimiters are detected."""
        result = await CsvConverter().convert(io.BytesIO(b"a;b\n1;2\n3;4\n"), StreamInfo(file_name="x.csv"), context)
        assert result.artifacts.tables[0].rows == [["a", "b"], ["1", "2"], ["3", "4"]]

    async def test_pipes_escaped(self, context):
        """Cell text containing pipes does not break the table."""
        result = await CsvConverter().convert(io.BytesIO(b'h\n"a|b"\n'), StreamInfo(file_name="p.tsv"), context)
        assert "| a\\|b |" in result.segments[0].markdown

    async def test_empty_file(self, context):
        """An empty file produces no segments."""
        result = await CsvConverter().convert(io.BytesIO(b""), StreamInfo(file_name="empty.csv"), context)
        assert result.segments == ()


@pytest.mark.asyncio
class TestPlainTextConverter:
    """Text and Markdown passthrough."""

    async def test_line_endings_normalized(self, context):
        """Carriage returns become newlines."""
        result = await PlainTextConverter().convert(
            io.BytesIO(b"Hello\r\nWorld"), StreamInfo(file_name="notes.txt"), context
        )
        assert result.segments[0].markdown == "Hello\nWorld"
        assert result.metadata["encoding"] == "utf-8"

    async def test_declared_charset(self, context):
        """The declared charset decodes the bytes."""
        result = await PlainTextConverter().convert(
            io.BytesIO(b"caf\xe9"), StreamInfo(file_name="a.txt", charset="iso-8859-1"), context
        )
        assert result.segments[0].markdown == "café"

    async def test_markdown_passthrough(self, converter):
        """Markdown files are kept as written and titled by their first heading."""
        result = await converter.convert(b"# Title\n\nBody *text*", StreamInfo(file_name="readme.md"))

        assert result.metadata["converter"] == "text"
        assert result.title == "Title"
        assert "# Title\n\nBody *text*" in result.markdown


class TestAcceptance:
    """Content checks behind the extension match."""

    def test_json_requires_object_or_array(self):
        """A .json name with non-JSON content is not accepted."""
        assert not JsonConverter().accepts(io.BytesIO(b"hello"), StreamInfo(extension=".json"))
        assert JsonConverter().accepts(io.BytesIO(b"  [1, 2]"), StreamInfo(extension=".json"))

    def test_text_rejects_binary(self):
        """NUL bytes without a byte order mark are not text."""
        converter = PlainTextConverter()
        info = StreamInfo(extension=".txt")
        assert not converter.accepts(io.BytesIO(b"ab\x00cd"), info)
        assert converter.accepts(io.BytesIO(b"\xff\xfeh\x00i\x00"), info)

    def test_format_element_name(self):
        assert format_element_name("orderLine") == "Order Line"
        assert format_element_name("id") == "Id"
