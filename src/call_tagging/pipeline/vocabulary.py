"""标签词表 (只读)。tag_value ↔ id ↔ tier。"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from call_tagging.common.models import TagDefinition
import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class TagInfo:
    id: int
    name: str
    tier: int
    priority: str = "Medium"
    label: str = ""
    description: str | None = None


class TagVocabulary:
    def __init__(self, tags: Iterable[TagInfo] = ()) -> None:
        self._by_name: dict[str, TagInfo] = {}
        self._by_id: dict[int, TagInfo] = {}
        for tag in tags:
            self._by_name[tag.name] = tag
            self._by_id[tag.id] = tag

    @classmethod
    async def load(cls, db: AsyncSession) -> TagVocabulary:
        rows = (await db.execute(
            select(TagDefinition).order_by(TagDefinition.id))).scalars().all()
        vocab = cls(
            TagInfo(
                id=r.id, name=r.tag_value, tier=r.tier_number,
                priority=r.priority, label=r.tag_name, description=r.description,
            )
            for r in rows if r.tag_value
        )
        logger.info("vocabulary_loaded", tags=len(vocab))
        return vocab

    def by_name(self, name: str) -> TagInfo | None:
        return self._by_name.get(name)

    def name_for(self, tag_id: int) -> str | None:
        tag = self._by_id.get(tag_id)
        return tag.name if tag else None

    def names_for_tier(self, tier: int) -> list[str]:
        return [t.name for t in self._by_id.values() if t.tier == tier]

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name
