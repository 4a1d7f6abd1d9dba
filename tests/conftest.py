"""Test configuration and sample documents for segmark tests."""

import io
import wave
import zipfile
from datetime import datetime
from email.message import EmailMessage

import pytest

from segmark.converters.registry import DocumentConverter
from segmark.models import ArtifactStorageOptions, SegmentOptions
from segmark.providers.base import ConversionProviders
from segmark.services.context import ConversionContext


@pytest.fixture
def options():
    """Segment options independent of the environment."""
    return SegmentOptions()


@pytest.fixture
def context(options):
    """Conversion context without providers or workspace."""
    return ConversionContext(options=options, storage=ArtifactStorageOptions(), providers=ConversionProviders())


@pytest.fixture
def converter(options):
    """Registry with the builtin converters and no providers."""
    return DocumentConverter(options=options, storage=ArtifactStorageOptions(), providers=ConversionProviders())


@pytest.fixture
def png_bytes():
    """A small red PNG."""
    from PIL import Image

    buffer = io.BytesIO()
    Image.new("RGB", (40, 20), "red").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def docx_bytes(png_bytes):
    """Two-page Word document with a heading, list, merged table and picture."""
    import docx

    doc = docx.Document()
    doc.core_properties.title = "Quarterly Report"
    doc.add_heading("Introduction", level=1)
    paragraph = doc.add_paragraph("Plain and ")
    paragraph.add_run("bold").bold = True
    paragraph.add_run(" text.")
    doc.add_paragraph("First item", style="List Bullet")

    table = doc.add_table(rows=3, cols=3)
    for col, text in enumerate(["Region", "Q1", "Q2"]):
        table.cell(0, col).text = text
    for col, text in enumerate(["North", "10", "20"]):
        table.cell(1, col).text = text
    merged = table.cell(2, 0).merge(table.cell(2, 1))
    merged.text = "Total"
    table.cell(2, 2).text = "30"

    doc.add_picture(io.BytesIO(png_bytes))
    doc.add_page_break()
    doc.add_paragraph("Second page text.")

    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def xlsx_bytes():
    """Workbook with a data sheet (formula, dates, merged cells) and an empty sheet."""
    import openpyxl

    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Sales"
    ws.append(["Region", "Amount", "Date", "Total"])
    ws.append(["North", 10.0, datetime(2024, 1, 15), "=B2+B3"])
    ws.append(["South", 2.5, datetime(2024, 2, 1), None])
    ws["A4"] = "Merged"
    ws.merge_cells("A4:B4")
    wb.create_sheet("Empty")
    wb.properties.title = "Sales Book"
    wb.properties.creator = "Finance Team"

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def pptx_bytes(png_bytes):
    """Two slides: bulleted content with notes, then a table and a picture."""
    from pptx import Presentation
    from pptx.util import Inches

    prs = Presentation()
    prs.core_properties.title = "Product Plan"

    slide = prs.slides.add_slide(prs.slide_layouts[1])
    slide.shapes.title.text = "Roadmap"
    body = slide.placeholders[1].text_frame
    body.text = "Ship v1"
    body.add_paragraph().text = "Collect feedback"
    slide.notes_slide.notes_text_frame.text = "Speaker notes here"

    slide = prs.slides.add_slide(prs.slide_layouts[5])
    slide.shapes.title.text = "Numbers"
    table = slide.shapes.add_table(2, 2, Inches(1), Inches(2), Inches(4), Inches(1)).table
    table.cell(0, 0).text = "Metric"
    table.cell(0, 1).text = "Value"
    table.cell(1, 0).text = "Users"
    table.cell(1, 1).text = "42"
    slide.shapes.add_picture(io.BytesIO(png_bytes), Inches(1), Inches(4))

    buffer = io.BytesIO()
    prs.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def pdf_bytes():
    """Two-page PDF with embedded text."""
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "QUARTERLY SUMMARY", fontsize=14)
    page.insert_text((72, 120), "Revenue grew in every region.", fontsize=11)
    page = doc.new_page()
    page.insert_text((72, 72), "Second page body.", fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def blank_pdf_bytes():
    """One-page PDF without any text layer."""
    import fitz

    doc = fitz.open()
    doc.new_page()
    data = doc.tobytes()
    doc.close()
    return data


def _draw_ruled_table(page, top, rows, columns=(72, 222, 372), row_height=30):
    """Draw a grid with stroked rules and write one line of text per cell."""
    bottom = top + row_height * len(rows)
    for index in range(len(rows) + 1):
        y = top + index * row_height
        page.draw_line((columns[0], y), (columns[-1], y))
    for x in columns:
        page.draw_line((x, top), (x, bottom))
    for row_index, row in enumerate(rows):
        for col_index, text in enumerate(row):
            if text:
                page.insert_text((columns[col_index] + 6, top + row_index * row_height + 20), text, fontsize=11)


@pytest.fixture
def split_table_pdf_bytes():
    """Two A4 pages; a ruled table ends page 1 and continues at the top of page 2.

    Page 2 repeats the header, and its first row carries the rest of the
    last row from page 1 under a blank first cell.
    """
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Quarterly figures follow.", fontsize=11)
    _draw_ruled_table(page, 680, [["Region", "Amount"], ["North", "10"], ["Notes", "first half"]])
    page = doc.new_page()
    _draw_ruled_table(page, 72, [["Region", "Amount"], ["", "second half"], ["South", "20"]])
    page.insert_text((72, 230), "End of report.", fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def image_pdf_bytes(png_bytes):
    """One page with a picture between two paragraphs."""
    import fitz

    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 100), "Before the chart.", fontsize=11)
    page.insert_image(fitz.Rect(72, 150, 272, 250), stream=png_bytes)
    page.insert_text((72, 320), "After the chart.", fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def wav_bytes():
    """One second of 8 kHz mono silence."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as handle:
        handle.setnchannels(1)
        handle.setsampwidth(2)
        handle.setframerate(8000)
        handle.writeframes(b"\x00\x00" * 8000)
    return buffer.getvalue()


@pytest.fixture
def eml_bytes():
    """Multipart message with plain and HTML bodies and one attachment."""
    message = EmailMessage()
    message["Subject"] = "Project update"
    message["From"] = "Alice <alice@example.com>"
    message["To"] = "bob@example.com"
    message["Date"] = "Mon, 15 Jan 2024 10:30:00 +0000"
    message["Message-ID"] = "<update-1@example.com>"
    message.set_content("Hello team, plain version.")
    message.add_alternative("<html><body><p>Hello <b>team</b></p></body></html>", subtype="html")
    message.add_attachment(b"col1,col2\n1,2\n", maintype="text", subtype="csv", filename="data.csv")
    return message.as_bytes()


CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>"""

CONTENT_OPF = """<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="id">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:title>Sample Book</dc:title>
    <dc:creator>Jane Doe</dc:creator>
    <dc:creator>John Roe</dc:creator>
    <dc:language>en</dc:language>
  </metadata>
  <manifest>
    <item id="c1" href="text/chapter1.xhtml" media-type="application/xhtml+xml"/>
    <item id="c2" href="text/chapter2.xhtml" media-type="application/xhtml+xml"/>
    <item id="css" href="style.css" media-type="text/css"/>
  </manifest>
  <spine>
    <itemref idref="c1"/>
    <itemref idref="c2"/>
  </spine>
</package>"""

CHAPTER_ONE = """<html xmlns="http://www.w3.org/1999/xhtml">
<head><title>Chapter One</title></head>
<body>
<h1>Chapter One</h1>
<p>It begins.</p>
<table><tr><th>A</th><th>B</th></tr><tr><td>1</td><td>2</td></tr></table>
</body>
</html>"""

CHAPTER_TWO = """<html xmlns="http://www.w3.org/1999/xhtml">
<body><p>The story continues.</p></body>
</html>"""


@pytest.fixture
def epub_bytes():
    """Minimal EPUB 3 package with two spine documents."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("mimetype", "application/epub+zip")
        archive.writestr("META-INF/container.xml", CONTAINER_XML)
        archive.writestr("OEBPS/content.opf", CONTENT_OPF)
        archive.writestr("OEBPS/text/chapter1.xhtml", CHAPTER_ONE)
        archive.writestr("OEBPS/text/chapter2.xhtml", CHAPTER_TWO)
        archive.writestr("OEBPS/style.css", "body { margin: 0; }")
    return buffer.getvalue()


@pytest.fixture
def zip_bytes():
    """Archive with text, CSV, empty and unsupported entries."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("notes.txt", "Hello from the archive")
        archive.writestr("data.csv", "name,value\nalpha,1\nbeta,2\n")
        archive.writestr("empty.txt", "")
        archive.writestr("blob.bin", b"\x00\x01\x02\x03\x04\x05")
    return buffer.getvalue()
