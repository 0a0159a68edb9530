from rag_chat.chat.context import (
    assemble_context,
    encode_sources,
    source_previews,
)
from rag_chat.types import RetrievalMatch, Segment


def _match(text: str, similarity: float, **metadata: object) -> RetrievalMatch:
    return RetrievalMatch(segment=Segment(text=text, metadata=dict(metadata)), similarity=similarity)


def test_assemble_context_keeps_retrieval_order() -> None:
    matches = [_match("first", 0.9), _match("second", 0.8), _match("third", 0.7)]

    assembled = assemble_context(matches)

    assert assembled.context_block == "first\n\nsecond\n\nthird"
    assert assembled.provenance == tuple(matches)


def test_assemble_context_empty() -> None:
    assembled = assemble_context([])

    assert assembled.context_block == ""
    assert assembled.provenance == ()


def test_source_previews_truncate_to_fifty_characters() -> None:
    long_text = "检索" * 60
    previews = source_previews([_match(long_text, 0.9, chunk_index=0), _match("short", 0.5)])

    assert previews[0]["pageContentPreview"] == long_text[:50] + "..."
    assert previews[0]["metadata"] == {"chunk_index": 0}
    assert previews[1]["pageContentPreview"] == "short..."
    for preview in previews:
        assert len(preview["pageContentPreview"].removesuffix("...")) <= 50


def test_encoded_sources_are_header_safe(decode_sources) -> None:
    previews = source_previews([_match("第一段。", 0.9, source="unit")])

    encoded = encode_sources(previews)

    assert encoded.isascii()
    assert decode_sources(encoded) == [
        {"pageContentPreview": "第一段。...", "metadata": {"source": "unit"}}
    ]
