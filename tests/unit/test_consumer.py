from scoped_rag.pipelines.consumer import NO_DOCUMENTS_MESSAGE, build_prompt_context
from scoped_rag.pipelines.models import Document


def test_no_documents_message():
    block = build_prompt_context("Where are my notes?", [])
    assert block.startswith("User query: Where are my notes?")
    assert NO_DOCUMENTS_MESSAGE in block
    assert "### Document" not in block


def test_documents_numbered_in_given_order():
    docs = [
        Document(identifier="/tmp/corpus/b.txt", content="bravo", attributes={"z": "1", "a": "2"}),
        Document(identifier="/tmp/corpus/a.txt", content="alpha"),
    ]
    block = build_prompt_context("q", docs)

    assert "Retrieved information:" in block
    assert block.index("### Document 1 (Path: b.txt)") < block.index("### Document 2 (Path: a.txt)")
    assert "Content: bravo" in block
    assert "Attributes: a=2, z=1" in block
