import pytest

from studymap.services.syllabus_service import extract_chapters, parse_chapters


def test_parse_chapters_object_with_content():
    chapters = parse_chapters({"chapters": [
        {"title": " Mechanics ", "content": ["Newton's Laws", " ", "Momentum"]},
        {"title": "Calculus", "topics": ["Integration by Parts"]},
    ]})

    assert [c.title for c in chapters] == ["Mechanics", "Calculus"]
    assert chapters[0].topics == ["Newton's Laws", "Momentum"]
    assert chapters[1].topics == ["Integration by Parts"]


def test_parse_chapters_bare_list_skips_untitled():
    chapters = parse_chapters([{"title": "", "content": ["x"]}, {"title": "Optics"}, "noise"])
    assert [c.title for c in chapters] == ["Optics"]
    assert chapters[0].topics == []


@pytest.mark.parametrize("payload", [{}, {"chapters": []}, [{"title": ""}], "text"])
def test_parse_chapters_nothing_usable(payload):
    with pytest.raises(ValueError):
        parse_chapters(payload)


@pytest.mark.asyncio
async def test_extract_rejects_empty_file():
    with pytest.raises(ValueError, match="empty"):
        await extract_chapters(b"", "syllabus.pdf")


@pytest.mark.asyncio
async def test_extract_rejects_unknown_format():
    with pytest.raises(ValueError, match="Unsupported format"):
        await extract_chapters(b"chapter 1", "syllabus.docx")
