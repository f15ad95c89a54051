"""
Document content loaders.

Each loader returns the plain text of one file. Loading is strictly separated
from attribute reading; these functions never touch extended attributes.
"""

from pathlib import Path

SUPPORTED_SUFFIXES = frozenset({".txt", ".md", ".pdf", ".docx"})


def load_text(filepath: str | Path) -> str:
    """Dispatch to the appropriate loader based on file extension."""
    path = Path(filepath)
    ext = path.suffix.lower()

    if ext in (".md", ".txt") or not ext:
        return _load_plain(path)
    elif ext == ".pdf":
        return _load_pdf(path)
    elif ext == ".docx":
        return _load_docx(path)
    else:
        raise ValueError(f"Unsupported file format: {ext!r} for file {path.name!r}")


def is_supported(filepath: str | Path) -> bool:
    suffix = Path(filepath).suffix.lower()
    return not suffix or suffix in SUPPORTED_SUFFIXES


# ---------------------------------------------------------------------------
# Private loaders
# ---------------------------------------------------------------------------


def _load_plain(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


def _load_pdf(path: Path) -> str:
    """Extract text page-by-page from a PDF using pypdf."""
    try:
        from pypdf import PdfReader
    except ImportError as e:
        raise ImportError(
            "pypdf is required for PDF loading. Install it with: pip install 'scoped-rag[loaders]'"
        ) from e

    reader = PdfReader(str(path))
    return "\n\n".join(page.extract_text() or "" for page in reader.pages)


def _load_docx(path: Path) -> str:
    """
    Extract paragraph text from a DOCX file using python-docx.

    Tables are flattened to pipe-delimited rows after the body paragraphs.
    """
    try:
        from docx import Document
    except ImportError as e:
        raise ImportError(
            "python-docx is required for DOCX loading. "
            "Install it with: pip install 'scoped-rag[loaders]'"
        ) from e

    doc = Document(str(path))
    blocks = [para.text.strip() for para in doc.paragraphs if para.text.strip()]

    for table in doc.tables:
        rows = []
        for row in table.rows:
            cells = [cell.text.strip().replace("\n", " ") for cell in row.cells]
            if any(cells):
                rows.append("| " + " | ".join(cells) + " |")
        if rows:
            blocks.append("\n".join(rows))

    return "\n\n".join(blocks)
