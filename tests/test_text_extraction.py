import pytest
from docx import Document as DocxDocument

from inkwell.errors import UnsupportedFileTypeError
from inkwell.text_extraction import is_supported, read_any


class TestIsSupported:

    @pytest.mark.parametrize(
        "mime,filename",
        [
            ("application/pdf", "report.pdf"),
            ("text/markdown", "notes.md"),
            ("application/json", "data.json"),
            ("", "README.TXT"),
            ("application/octet-stream", "manual.docx"),
        ],
    )
    def test_supported(self, mime, filename):
        assert is_supported(mime, filename)

    @pytest.mark.parametrize("mime,filename", [("image/png", "photo.png"), ("", "archive.zip")])
    def test_unsupported(self, mime, filename):
        assert not is_supported(mime, filename)


class TestReadAny:

    def test_plain_text(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("Hello from a text file.", encoding="utf-8")
        assert read_any(str(path), "text/plain", "notes.txt") == ("Hello from a text file.", "txt")

    def test_docx_paragraphs_and_tables(self, tmp_path):
        path = tmp_path / "guide.docx"
        doc = DocxDocument()
        doc.add_paragraph("Returns policy")
        table = doc.add_table(rows=2, cols=2)
        table.cell(0, 0).text = "Item"
        table.cell(0, 1).text = "Days"
        table.cell(1, 0).text = "Shoes"
        table.cell(1, 1).text = "30"
        doc.save(str(path))

        text, kind = read_any(str(path), "", "guide.docx")

        assert kind == "docx"
        assert "Returns policy" in text
        assert "Item | Days" in text
        assert "Shoes | 30" in text

    def test_unsupported_type(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG")
        with pytest.raises(UnsupportedFileTypeError):
            read_any(str(path), "image/png", "photo.png")
