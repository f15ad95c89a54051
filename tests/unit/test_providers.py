"""
Unit tests for metadata providers and document loaders.

xattr tests need a filesystem with user.* extended attribute support; they
skip themselves when the pytest tmp directory does not provide it.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from scoped_rag.pipelines.loaders import is_supported, load_text
from scoped_rag.pipelines.providers import (
    ProviderError,
    RegistryMetadataProvider,
    XattrMetadataProvider,
    check_xattr_support,
    write_document,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def xattr_dir(tmp_path: Path) -> Path:
    if not check_xattr_support(tmp_path):
        pytest.skip("filesystem under tmp_path does not support user xattrs")
    return tmp_path


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


class TestLoaders:
    def test_plain_text(self, tmp_path: Path):
        path = tmp_path / "note.txt"
        path.write_text("hello\nworld", encoding="utf-8")
        assert load_text(path) == "hello\nworld"

    def test_markdown_and_extensionless_read_as_text(self, tmp_path: Path):
        (tmp_path / "README").write_text("plain", encoding="utf-8")
        (tmp_path / "doc.md").write_text("# Title", encoding="utf-8")
        assert load_text(tmp_path / "README") == "plain"
        assert load_text(tmp_path / "doc.md") == "# Title"

    def test_unsupported_extension_raises(self, tmp_path: Path):
        path = tmp_path / "sheet.xlsx"
        path.write_bytes(b"")
        with pytest.raises(ValueError):
            load_text(path)

    def test_is_supported(self):
        assert is_supported("a.txt")
        assert is_supported("a.PDF")
        assert not is_supported("a.xlsx")

    def test_docx_paragraphs_and_tables(self, tmp_path: Path):
        docx = pytest.importorskip("docx")
        path = tmp_path / "policy.docx"
        document = docx.Document()
        document.add_paragraph("Access policy")
        document.add_paragraph("   ")
        table = document.add_table(rows=1, cols=2)
        table.cell(0, 0).text = "user_id"
        table.cell(0, 1).text = "123"
        document.save(str(path))

        text = load_text(path)

        assert "Access policy" in text
        assert "| user_id | 123 |" in text
        assert text.index("Access policy") < text.index("| user_id | 123 |")

    def test_pdf_pages_extracted(self, tmp_path: Path):
        pypdf = pytest.importorskip("pypdf")
        path = tmp_path / "blank.pdf"
        writer = pypdf.PdfWriter()
        writer.add_blank_page(width=72, height=72)
        writer.add_blank_page(width=72, height=72)
        with open(path, "wb") as fh:
            writer.write(fh)

        text = load_text(path)

        assert isinstance(text, str)
        assert text.strip() == ""

    def test_corrupt_pdf_raises_from_loader(self, tmp_path: Path):
        pytest.importorskip("pypdf")
        from pypdf.errors import PyPdfError

        path = tmp_path / "broken.pdf"
        path.write_bytes(b"not a pdf at all")
        with pytest.raises(PyPdfError):
            load_text(path)


# ---------------------------------------------------------------------------
# Content reads through XattrMetadataProvider
# ---------------------------------------------------------------------------


class TestContentErrors:
    @pytest.mark.parametrize(
        "name, payload",
        [("broken.pdf", b"not a pdf at all"), ("broken.docx", b"not a zip archive")],
    )
    def test_corrupt_files_raise_provider_error(self, tmp_path: Path, name, payload):
        path = tmp_path / name
        path.write_bytes(payload)
        with pytest.raises(ProviderError):
            XattrMetadataProvider(tmp_path).read_content(str(path))

    def test_unsupported_suffix_raises_provider_error(self, tmp_path: Path):
        path = tmp_path / "sheet.xlsx"
        path.write_bytes(b"")
        with pytest.raises(ProviderError):
            XattrMetadataProvider(tmp_path).read_content(str(path))


# ---------------------------------------------------------------------------
# RegistryMetadataProvider
# ---------------------------------------------------------------------------


class TestRegistryProvider:
    def test_reads_content_and_attributes(self):
        provider = RegistryMetadataProvider(
            {"a": {"content": "alpha", "attributes": {"sensitivity": "internal"}}}
        )
        assert provider.list_identifiers() == ["a"]
        assert provider.read_content("a") == "alpha"
        assert provider.list_attributes("a") == {"sensitivity": "internal"}

    def test_unknown_identifier_raises(self):
        provider = RegistryMetadataProvider({})
        with pytest.raises(ProviderError):
            provider.read_content("missing")
        with pytest.raises(ProviderError):
            provider.list_attributes("missing")

    def test_source_mapping_copied(self):
        records = {"a": {"content": "alpha", "attributes": {"user_id": "1"}}}
        provider = RegistryMetadataProvider(records)
        records["a"]["attributes"]["user_id"] = "2"
        returned = provider.list_attributes("a")
        returned["user_id"] = "3"
        assert provider.list_attributes("a") == {"user_id": "1"}

    def test_missing_attributes_default_to_empty(self):
        provider = RegistryMetadataProvider({"a": {"content": "alpha"}})
        assert provider.list_attributes("a") == {}

    def test_non_string_attribute_value_raises(self):
        provider = RegistryMetadataProvider({"a": {"content": "x", "attributes": {"level": 3}}})
        with pytest.raises(ProviderError, match="level"):
            provider.list_attributes("a")


# ---------------------------------------------------------------------------
# XattrMetadataProvider
# ---------------------------------------------------------------------------


class TestXattrProvider:
    def test_write_then_read_strips_namespace(self, xattr_dir: Path):
        path = write_document(
            xattr_dir / "notes.txt",
            "My personal notes.",
            {"user_id": "123", "sensitivity": "confidential", "location": "New York"},
        )
        provider = XattrMetadataProvider(xattr_dir)

        assert provider.list_identifiers() == [str(path)]
        assert provider.read_content(str(path)) == "My personal notes."
        assert provider.list_attributes(str(path)) == {
            "location": "New York",
            "sensitivity": "confidential",
            "user_id": "123",
        }
        assert os.getxattr(path, "user.user_id") == b"123"

    def test_prefixed_keys_not_doubled(self, xattr_dir: Path):
        path = write_document(xattr_dir / "a.txt", "x", {"user.location": "London"})
        assert os.getxattr(path, "user.location") == b"London"

    def test_file_without_xattrs_has_empty_attributes(self, xattr_dir: Path):
        path = xattr_dir / "plain.txt"
        path.write_text("plain", encoding="utf-8")
        assert XattrMetadataProvider(xattr_dir).list_attributes(str(path)) == {}

    def test_unsupported_and_probe_files_not_listed(self, xattr_dir: Path):
        (xattr_dir / "keep.txt").write_text("x", encoding="utf-8")
        (xattr_dir / "skip.xlsx").write_bytes(b"")
        (xattr_dir / "subdir").mkdir()
        identifiers = XattrMetadataProvider(xattr_dir).list_identifiers()
        assert [Path(i).name for i in identifiers] == ["keep.txt"]

    def test_probe_leaves_no_file(self, xattr_dir: Path):
        assert check_xattr_support(xattr_dir)
        assert list(xattr_dir.iterdir()) == []

    def test_missing_file_raises_provider_error(self, xattr_dir: Path):
        provider = XattrMetadataProvider(xattr_dir)
        missing = str(xattr_dir / "gone.txt")
        with pytest.raises(ProviderError):
            provider.read_content(missing)
        with pytest.raises(ProviderError):
            provider.list_attributes(missing)

    def test_missing_directory_raises(self, tmp_path: Path):
        with pytest.raises(ProviderError):
            XattrMetadataProvider(tmp_path / "nope").list_identifiers()
