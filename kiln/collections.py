from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence

from .content import Page
from .utils import slugify


class ArticleCollection(Sequence[Page]):
    """Blog articles, newest first, with helpers for templates."""

    def __init__(self, articles: Iterable[Page]):
        # Ties on date fall back to the source path for a stable order
        self._articles = sorted(
            articles, key=lambda p: (p.date, p.source_path), reverse=True
        )

    def __iter__(self) -> Iterator[Page]:
        return iter(self._articles)

    def __len__(self) -> int:
        return len(self._articles)

    def __getitem__(self, item):
        return self._articles[item]

    def with_tag(self, tag: str) -> ArticleCollection:
        slug = slugify(tag)
        return ArticleCollection(
            p for p in self._articles if any(slugify(t) == slug for t in p.tags)
        )

    def in_year(self, year: int) -> ArticleCollection:
        return ArticleCollection(p for p in self._articles if p.date.year == year)

    def latest(self, count: int = 5) -> ArticleCollection:
        return ArticleCollection(self._articles[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"ArticleCollection({len(self._articles)} articles)"


class TagCollection(Mapping[str, ArticleCollection]):
    """Mapping of tag name to the articles carrying it, in tag order.

    Tags are grouped by their slug, so "Python" and "python" are one tag,
    named by the spelling of the first article carrying it. Lookups accept
    any spelling. Tags without letters or digits have no slug and are left
    out.
    """

    def __init__(self, articles: Iterable[Page]):
        names: dict[str, str] = {}
        grouped: dict[str, list[Page]] = {}
        for article in articles:
            for tag in article.tags:
                slug = slugify(tag)
                if not slug:
                    continue
                names.setdefault(slug, tag)
                members = grouped.setdefault(slug, [])
                if not members or members[-1] is not article:
                    members.append(article)
        self._mapping = {
            slug: ArticleCollection(grouped[slug])
            for slug in sorted(grouped, key=lambda s: names[s].lower())
        }
        self._names = names

    def __getitem__(self, key: str) -> ArticleCollection:
        try:
            return self._mapping[slugify(key)]
        except KeyError:
            raise KeyError(key) from None

    def __iter__(self) -> Iterator[str]:
        return (self._names[slug] for slug in self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagCollection({len(self._mapping)} tags)"
