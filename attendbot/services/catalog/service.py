from __future__ import annotations

import math
from dataclasses import dataclass
from html import escape

from attendbot.db.models import Course
from attendbot.db.store import Store

COURSES_PER_PAGE = 30
# courses.ordinal is a 32-bit INTEGER column
MAX_ORDINAL = 2**31 - 1


@dataclass(frozen=True)
class CoursePage:
    page: int
    total_pages: int
    courses: list[Course]

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages - 1

    @property
    def has_prev(self) -> bool:
        return self.page > 0


class CourseCatalog:
    """Read-only view of the courses table."""

    def __init__(self, per_page: int = COURSES_PER_PAGE) -> None:
        self.per_page = per_page

    async def get_by_ordinal(self, store: Store, ordinal: int) -> Course | None:
        if not 1 <= ordinal <= MAX_ORDINAL:
            return None
        return await store.get(Course, ordinal)

    async def total_count(self, store: Store) -> int:
        return await store.count(Course)

    async def total_pages(self, store: Store) -> int:
        return math.ceil(await self.total_count(store) / self.per_page)

    async def get_courses(self, store: Store, offset: int, limit: int) -> list[Course]:
        return await store.scan(Course, order_by=Course.ordinal.asc(), offset=offset, limit=limit)

    async def get_page(self, store: Store, page: int) -> CoursePage:
        total_pages = await self.total_pages(store)
        courses = await self.get_courses(store, page * self.per_page, self.per_page)
        return CoursePage(page=page, total_pages=total_pages, courses=courses)

    async def upsert(self, store: Store, *, ordinal: int, name: str, external_id: str) -> Course:
        return await store.put(Course(ordinal=int(ordinal), name=name.strip(), external_id=external_id.strip()))


def page_message(page: CoursePage) -> str:
    lines = ["Please select your course by replying with the corresponding number:"]
    if page.courses:
        lines.extend(f"{c.ordinal}. {escape(c.name)}" for c in page.courses)
    else:
        lines.append("No courses available. Please contact support.")

    lines.append("")
    lines.append(f"Page {page.page + 1} of {max(page.total_pages, 1)}")
    if page.has_next:
        lines.append("➡️ Reply 'f' for next page")
    if page.has_prev:
        lines.append("⬅️ Reply 'b' for previous page")
    lines.append("Or enter a course number to select.")
    lines.append("")
    lines.append("<i>Type 'back' to return to the main menu.</i>")
    return "\n".join(lines)


course_catalog = CourseCatalog()
