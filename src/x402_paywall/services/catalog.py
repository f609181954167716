# src/x402_paywall/services/catalog.py
"""Price and existence lookups for paywalled content."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from x402_paywall.core.settings import settings
from x402_paywall.core.validation import is_valid_resource_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Price:
    """Display amount and token mint a resource is sold for."""

    amount: Decimal
    token_mint: str


@dataclass(frozen=True)
class ArticleSummary:
    """Free metadata shown before an article is bought."""

    id: str
    title: str
    excerpt: str
    preview: str
    word_count: int
    read_time_minutes: int
    price: Price


EXCERPT_LENGTH = 150
PREVIEW_PARAGRAPHS = 2
WORDS_PER_MINUTE = 200

_HEADING = re.compile(r"^#+\s+", re.MULTILINE)
_EMPHASIS = re.compile(r"\*+")


def summarize(resource_id: str, text: str, price: Price) -> ArticleSummary:
    """Build the free summary of a markdown article."""
    title = next(
        (line[2:].strip() for line in text.splitlines() if line.startswith("# ")),
        resource_id,
    )
    plain = " ".join(_EMPHASIS.sub("", _HEADING.sub("", text)).split())
    excerpt = plain if len(plain) <= EXCERPT_LENGTH else plain[:EXCERPT_LENGTH] + "..."
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip() and not p.lstrip().startswith("#")]
    words = len(plain.split())
    return ArticleSummary(
        id=resource_id,
        title=title,
        excerpt=excerpt,
        preview="\n\n".join(paragraphs[:PREVIEW_PARAGRAPHS]),
        word_count=words,
        read_time_minutes=max(1, math.ceil(words / WORDS_PER_MINUTE)),
        price=price,
    )


class ContentCatalog(Protocol):
    def exists(self, resource_id: str) -> bool: ...

    def price_of(self, resource_id: str) -> Price: ...

    def read(self, resource_id: str) -> str: ...


class DirectoryContentCatalog:
    """Markdown articles stored as ``<resource_id>.md`` under one directory.

    Every article sells for the same configured price.
    """

    def __init__(
        self,
        root: str | Path,
        default_price: Decimal,
        token_mint: str,
    ) -> None:
        self.root = Path(root)
        self.default_price = default_price
        self.token_mint = token_mint

    def _path(self, resource_id: str) -> Path | None:
        if not is_valid_resource_id(resource_id):
            return None
        return self.root / f"{resource_id}.md"

    def exists(self, resource_id: str) -> bool:
        path = self._path(resource_id)
        return path is not None and path.is_file()

    def price_of(self, resource_id: str) -> Price:
        if not self.exists(resource_id):
            raise KeyError(resource_id)
        return Price(amount=self.default_price, token_mint=self.token_mint)

    def read(self, resource_id: str) -> str:
        path = self._path(resource_id)
        if path is None or not path.is_file():
            raise KeyError(resource_id)
        return path.read_text(encoding="utf-8")

    def list_ids(self) -> list[str]:
        if not self.root.is_dir():
            logger.warning("Articles directory %s does not exist", self.root)
            return []
        return sorted(p.stem for p in self.root.glob("*.md") if is_valid_resource_id(p.stem))

    def summary(self, resource_id: str) -> ArticleSummary:
        return summarize(resource_id, self.read(resource_id), self.price_of(resource_id))

    def list_summaries(self) -> list[ArticleSummary]:
        return [self.summary(resource_id) for resource_id in self.list_ids()]


def get_catalog() -> DirectoryContentCatalog:
    """Return a catalog over the configured articles directory."""
    return DirectoryContentCatalog(
        settings.articles_path,
        default_price=settings.article_cost,
        token_mint=settings.spl_token_mint,
    )
