"""Tests for stream descriptors, MIME mapping and content sniffing."""

import io

from segmark.detection import mime
from segmark.detection.guesser import StreamInfoGuesser, read_sample
from segmark.detection.stream_info import StreamInfo


class TestMime:
    """Extension and MIME type helpers."""

    def test_normalize_extension(self):
        """Extensions are lower-cased and dotted."""
        assert mime.normalize_extension("PDF") == ".pdf"
        assert mime.normalize_extension(" .Docx ") == ".docx"
        assert mime.normalize_extension("") is None

    def test_normalize_mime_strips_parameters_and_aliases(self):
        """Parameters are dropped and aliases collapse."""
        assert mime.normalize_mime("Text/HTML; charset=UTF-8") == "text/html"
        assert mime.normalize_mime("application/x-pdf") == mime.PDF

    def test_round_trip_lookup(self):
        """Known extensions map to MIME types and back."""
        assert mime.get_mime_type(".xlsx") == mime.XLSX
        assert mime.get_extension(mime.JPEG) == ".jpg"

    def test_charset_from_mime(self):
        """The charset parameter is extracted."""
        assert mime.charset_from_mime('text/plain; charset="ISO-8859-1"') == "iso-8859-1"
        assert mime.charset_from_mime("text/plain") is None


class TestStreamInfo:
    """Descriptor resolution."""

    def test_extension_from_file_name(self):
        """The extension falls back to the file name."""
        assert StreamInfo(file_name="Report.PDF").resolve_extension() == ".pdf"

    def test_extension_from_url(self):
        """URL paths are used when nothing else is known."""
        info = StreamInfo(url="https://example.com/files/data%20set.csv?x=1")
        assert info.resolve_extension() == ".csv"
        assert info.resolve_file_name() == "data set.csv"

    def test_mime_from_extension(self):
        """The MIME type falls back to the extension."""
        assert StreamInfo(extension="docx").resolve_mime_type() == mime.DOCX

    def test_copy_and_update_ignores_empty_fields(self):
        """Only non-empty fields overlay."""
        base = StreamInfo(file_name="a.txt", charset="utf-8")
        merged = base.copy_and_update(StreamInfo(mime_type="text/csv"))
        assert merged.file_name == "a.txt"
        assert merged.mime_type == "text/csv"
        assert merged.charset == "utf-8"


class TestStreamInfoGuesser:
    """Content sniffing."""

    def guess(self, data: bytes, info: StreamInfo = None):
        return StreamInfoGuesser().guess(io.BytesIO(data), info)

    def test_pdf_signature(self):
        """PDF bytes are recognized without any hint."""
        candidates = self.guess(b"%PDF-1.7\n...")
        assert candidates[0].resolve_mime_type() == mime.PDF

    def test_zip_container_keeps_declared_extension(self):
        """A ZIP container declared as DOCX stays DOCX."""
        candidates = self.guess(b"PK\x03\x04rest-of-archive", StreamInfo(file_name="letter.docx"))
        assert len(candidates) == 1
        assert candidates[0].resolve_extension() == ".docx"

    def test_plain_zip(self):
        """Unknown ZIP payloads are archives."""
        candidates = self.guess(b"PK\x03\x04rest-of-archive")
        assert candidates[0].extension == ".zip"

    def test_image_signatures(self):
        """PNG and JPEG magic numbers are detected."""
        assert self.guess(b"\x89PNG\r\n\x1a\nxxxx")[0].mime_type == mime.PNG
        assert self.guess(b"\xff\xd8\xff\xe0xxxx")[0].mime_type == mime.JPEG

    def test_text_flavours(self):
        """HTML, JSON, CSV and plain text are told apart."""
        assert self.guess(b"<!DOCTYPE html><html></html>")[0].mime_type == mime.HTML
        assert self.guess(b'  {"a": 1}')[0].mime_type == mime.JSON
        assert self.guess(b"a,b\n1,2\n")[0].mime_type == mime.CSV
        assert self.guess(b"just some words")[0].mime_type == mime.TEXT

    def test_disagreement_keeps_declared_first(self):
        """When sniffing disagrees the declared descriptor is tried first."""
        candidates = self.guess(b"%PDF-1.4", StreamInfo(file_name="notes.txt"))
        assert len(candidates) == 2
        assert candidates[0].resolve_extension() == ".txt"
        assert candidates[1].mime_type == mime.PDF
        assert candidates[1].file_name == "notes.txt"

    def test_agreement_merges(self):
        """Compatible guesses produce a single merged candidate."""
        candidates = self.guess(b'{"a": 1}', StreamInfo(file_name="data.json"))
        assert len(candidates) == 1
        assert candidates[0].file_name == "data.json"
        assert candidates[0].mime_type == mime.JSON

    def test_binary_without_signature(self):
        """Unrecognized binary data keeps only the declared descriptor."""
        candidates = self.guess(b"\x00\x01\x02\x03", StreamInfo(file_name="blob.bin"))
        assert len(candidates) == 1

    def test_declared_charset_comes_from_mime(self):
        """Charset parameters on the declared MIME type are kept."""
        candidates = self.guess(b"hello", StreamInfo(mime_type="text/plain; charset=latin-1"))
        assert candidates[0].charset == "latin-1"

    def test_read_sample_restores_position(self):
        """Sniffing leaves the stream where it was."""
        stream = io.BytesIO(b"0123456789")
        stream.seek(4)
        assert read_sample(stream, 3) == b"012"
        assert stream.tell() == 4
