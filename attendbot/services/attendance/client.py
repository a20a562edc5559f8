from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from attendbot.core.errors import RemoteServiceError
from attendbot.core.time import today_local

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StudentAttendance:
    name: str
    attended: int
    total: int
    percentage: float


@dataclass(frozen=True)
class AttendanceResult:
    success: bool
    data: StudentAttendance | None = None
    message: str | None = None
    status: int | None = None
    detail: str | None = None


class AttendanceClient:
    """TeachUs student attendance API.

    One POST per lookup returns the whole class list; the student is picked
    out by the phone number stored as ``contact``.
    """

    def __init__(
        self,
        *,
        url: str,
        token: str | None,
        college_code: str,
        from_date: str,
        timeout_seconds: float = 20,
    ) -> None:
        self._url = url
        self._token = token
        self._college_code = college_code
        self._from_date = from_date
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": self._token or "",
            "Content-Type": "application/x-www-form-urlencoded; charset=utf-8",
            "Accept": "*/*",
            "Origin": "https://academics.teachusapp.com",
            "Referer": "https://academics.teachusapp.com/",
        }

    async def _post_class_list(self, class_id: str) -> dict[str, Any]:
        form = {
            "college_code": self._college_code,
            "class_id": class_id,
            "subject_id": "0",
            "from_date": self._from_date,
            "to_date": today_local(),
        }
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            async with session.post(self._url, data=form, headers=self._headers()) as resp:
                data = await _read_json_best_effort(resp)
                if resp.status >= 400:
                    raise RemoteServiceError(
                        f"Failed to retrieve data from the service (status {resp.status}). "
                        "The server might be experiencing issues.",
                        status=resp.status,
                        detail=str(data)[:500],
                    )
        return data

    async def fetch_attendance(self, course_external_id: str, phone_number: str) -> AttendanceResult:
        if not self._token:
            log.error("attendance_token_missing")
            return AttendanceResult(False, message="Attendance service is not configured. Please try again later.")

        try:
            data = await self._post_class_list(course_external_id)
        except RemoteServiceError as e:
            log.warning("attendance_http_error class_id=%s status=%s", course_external_id, e.status)
            return AttendanceResult(False, message=str(e), status=e.status, detail=e.detail)
        except asyncio.TimeoutError:
            log.warning("attendance_timeout class_id=%s", course_external_id)
            return AttendanceResult(
                False,
                message="The attendance service took too long to answer. Please try again later.",
                detail="timeout",
            )
        except aiohttp.ClientError as e:
            log.warning("attendance_connection_error class_id=%s err=%s", course_external_id, e)
            return AttendanceResult(
                False,
                message="Could not connect to the attendance service. Please try again later.",
                detail=str(e),
            )

        students = data.get("student_list")
        if not isinstance(students, list):
            log.warning("attendance_unexpected_payload class_id=%s", course_external_id)
            return AttendanceResult(
                False,
                message="Attendance data is not available in the expected format for this course.",
                detail=str(data)[:500],
            )

        student = next((s for s in students if isinstance(s, dict) and str(s.get("contact")) == phone_number), None)
        if student is None:
            return AttendanceResult(
                False,
                message=f"No data found for your phone number ({phone_number}) in the selected course.",
            )

        try:
            record = StudentAttendance(
                name=str(student.get("f_name") or "").strip() or "—",
                attended=int(student.get("lectures_attended") or 0),
                total=int(student.get("total_lectures") or 0),
                # the provider's spelling
                percentage=float(student.get("perecentage_att") or 0),
            )
        except (TypeError, ValueError):
            return AttendanceResult(
                False,
                message="Attendance data is not available in the expected format for this course.",
                detail=str(student)[:500],
            )
        return AttendanceResult(True, data=record)


async def _read_json_best_effort(resp: aiohttp.ClientResponse) -> dict[str, Any]:
    """Read JSON while staying resilient to broken/missing content-type."""
    try:
        data = await resp.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        try:
            txt = await resp.text()
        except aiohttp.ClientError:
            txt = ""
        return {"_raw": txt}
    return data if isinstance(data, dict) else {"_raw": data}


def build_attendance_client() -> AttendanceClient:
    from attendbot.core.config import settings

    return AttendanceClient(
        url=settings.attendance_api_url,
        token=settings.attendance_api_token,
        college_code=settings.attendance_college_code,
        from_date=settings.attendance_from_date,
        timeout_seconds=settings.attendance_timeout_seconds,
    )
