import datetime as dt
from pathlib import Path

from kiln.collections import ArticleCollection, TagCollection
from kiln.content import Page


def make_article(slug, date, tags=()):
    return Page(
        title=slug.title(),
        body="",
        content="",
        source_path=f"blog/{date.isoformat()}-{slug}.html",
        output_path=f"/blog/{date:%Y/%m/%d}/{slug}.html",
        layout=None,
        date=date,
        tags=list(tags),
        published=True,
        path=Path(f"{slug}.md"),
        source_type="markdown",
    )


def test_article_collection_newest_first():
    older = make_article("older", dt.date(2023, 1, 1), ["python"])
    newer = make_article("newer", dt.date(2024, 1, 1), ["web"])
    same_day = make_article("another", dt.date(2024, 1, 1), ["python"])
    articles = ArticleCollection([older, newer, same_day])

    assert [a.title for a in articles] == ["Newer", "Another", "Older"]
    assert len(articles) == 3
    assert articles[0] is newer
    assert [a.title for a in articles.with_tag("python")] == ["Another", "Older"]
    assert [a.title for a in articles.in_year(2023)] == ["Older"]
    assert [a.title for a in articles.latest(2)] == ["Newer", "Another"]


def test_tag_collection_groups_articles():
    a = make_article("a", dt.date(2024, 1, 1), ["python", "Web"])
    b = make_article("b", dt.date(2024, 2, 1), ["python"])
    tags = TagCollection([a, b])

    assert list(tags) == ["python", "Web"]
    assert len(tags) == 2
    assert [p.title for p in tags["python"]] == ["B", "A"]
    assert [p.title for p in tags["web"]] == ["A"]
    assert "Ruby" not in tags
    assert not TagCollection([])


def test_tag_collection_merges_spellings_of_one_slug():
    a = make_article("a", dt.date(2024, 1, 1), ["Python", "c++"])
    b = make_article("b", dt.date(2024, 2, 1), ["python", "PYTHON"])
    c = make_article("c", dt.date(2024, 3, 1), ["C", "++"])
    tags = TagCollection([a, b, c])

    assert list(tags) == ["c++", "Python"]
    assert [p.title for p in tags["python"]] == ["B", "A"]
    assert [p.title for p in tags["C"]] == ["C", "A"]
    assert "++" not in tags
    assert dict(tags.items()).keys() == {"c++", "Python"}


def test_with_tag_matches_any_spelling():
    a = make_article("a", dt.date(2024, 1, 1), ["Python"])
    b = make_article("b", dt.date(2024, 2, 1), ["python"])
    assert [p.title for p in ArticleCollection([a, b]).with_tag("PYTHON")] == ["B", "A"]
