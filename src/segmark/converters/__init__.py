"""Document converters for segmark."""

from .archive import ZipConverter
from .audio import AudioConverter
from .base import BaseConverter
from .delimited import CsvConverter
from .eml import EmlConverter
from .epub import EpubConverter
from .excel import XlsxConverter
from .image import ImageConverter
from .pdf import PdfConverter
from .presentation import PptxConverter
from .registry import ConverterRegistration, DocumentConverter
from .structured import JsonConverter, XmlConverter
from .text import PlainTextConverter
from .web import HtmlConverter, convert_html_string
from .word import DocxConverter

__all__ = [
    "BaseConverter",
    "ConverterRegistration",
    "DocumentConverter",
    "PdfConverter",
    "DocxConverter",
    "XlsxConverter",
    "PptxConverter",
    "EmlConverter",
    "EpubConverter",
    "ZipConverter",
    "HtmlConverter",
    "JsonConverter",
    "XmlConverter",
    "CsvConverter",
    "ImageConverter",
    "AudioConverter",
    "PlainTextConverter",
    "convert_html_string",
]
