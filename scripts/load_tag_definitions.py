"""
从 CSV 导入 / 更新标签词表 (按 id upsert, 不删除旧 id)。

CSV 列: id, tier, priority, tag_name, tag_value, description (其余列忽略)
usage: python scripts/load_tag_definitions.py docs/tag_definitions.csv
"""
import asyncio
import csv
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT / "src"))

from call_tagging.common.database import build_engine, build_session_factory, upsert
from call_tagging.common.models import TagDefinition


def read_rows(path: Path) -> list[dict]:
    rows = []
    with path.open(newline="", encoding="utf-8") as f:
        for rec in csv.DictReader(f):
            try:
                tag_id = int(rec["id"])
                tier = int(rec["tier"])
            except (KeyError, TypeError, ValueError):
                continue
            tag_value = (rec.get("tag_value") or "").strip()
            if not tag_value or not 1 <= tier <= 10:
                continue
            rows.append({
                "id": tag_id,
                "tag_value": tag_value,
                "tag_name": (rec.get("tag_name") or "").strip(),
                "tier_number": tier,
                "priority": (rec.get("priority") or "Medium").strip(),
                "description": (rec.get("description") or "").strip() or None,
            })
    return rows


async def main(path: Path) -> None:
    rows = read_rows(path)
    if not rows:
        sys.exit(f"No usable rows in {path}")

    engine = build_engine()
    session_factory = build_session_factory(engine)
    async with session_factory() as db:
        async with db.begin():
            stmt = upsert(db, TagDefinition).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=[TagDefinition.id],
                set_={c: stmt.excluded[c] for c in
                      ("tag_value", "tag_name", "tier_number", "priority", "description")},
            )
            await db.execute(stmt)
    await engine.dispose()
    print(f"Loaded {len(rows)} tag definitions from {path}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        sys.exit("usage: python scripts/load_tag_definitions.py <csv>")
    asyncio.run(main(Path(sys.argv[1])))
