"""Dialogue driver for the attendance bot.

Takes one inbound event for one user, advances that user's session and
returns the replies to send. Transport agnostic: the aiogram layer turns
``Reply.menu`` into the inline main menu keyboard.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from html import escape
from typing import AsyncContextManager, Callable, Literal

from attendbot.core.errors import NotAllowedError, ValidationError
from attendbot.db.session import unit_of_work
from attendbot.db.store import Store
from attendbot.engine.session import Session, SessionRegistry, UserLocks
from attendbot.engine.states import DialogState
from attendbot.services.attendance.client import AttendanceClient, AttendanceResult
from attendbot.services.catalog.service import CourseCatalog, course_catalog, page_message
from attendbot.services.entitlements.plans import FEATURE_CONTENT, get_plan, plans_message
from attendbot.services.entitlements.service import (
    REASON_FREE_LIMIT,
    EntitlementService,
    entitlement_service,
)
from attendbot.services.referrals.service import (
    ReferralService,
    parse_referral_payload,
    referral_service,
)
from attendbot.services.telemetry.sink import LogSink, NullLogSink

log = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^[0-9]{10}$")

CB_CHECK_ATTENDANCE = "check_attendance"
CB_MY_STATUS = "my_status"
CB_PLANS = "plans"
CB_INVITE_EARN = "invite_earn"
CB_TALK_WITH_US = "talk_with_us"

MAIN_MENU_PROMPT = "Please choose an option from the menu below:"
BACK_HINT = "<i>Type 'back' to return to the main menu.</i>"
GENERIC_FAILURE = "Oops! Something went wrong on our end. Please try again by typing /start."

EventKind = Literal["command", "callback", "text"]


@dataclass(frozen=True)
class InboundEvent:
    user_id: int
    kind: EventKind
    payload: str
    username: str | None = None
    first_name: str | None = None


@dataclass(frozen=True)
class Reply:
    text: str
    menu: bool = False


@dataclass
class _Turn:
    """Per-event scratch: the session being advanced and replies so far."""

    event: InboundEvent
    session: Session
    replies: list[Reply] = field(default_factory=list)

    @property
    def user_id(self) -> int:
        return self.event.user_id

    @property
    def log_extra(self) -> dict[str, object]:
        return {"user_id": self.event.user_id, "state": self.session.state.value}

    def say(self, text: str) -> None:
        self.replies.append(Reply(text))

    def main_menu(self, text: str = MAIN_MENU_PROMPT) -> None:
        self.session.state = DialogState.MAIN_MENU
        self.replies.append(Reply(text, menu=True))


class ConversationEngine:
    def __init__(
        self,
        *,
        attendance: AttendanceClient,
        sink: LogSink | None = None,
        entitlements: EntitlementService | None = None,
        referrals: ReferralService | None = None,
        catalog: CourseCatalog | None = None,
        uow: Callable[[], AsyncContextManager[Store]] = unit_of_work,
        bot_username: str | None = None,
    ) -> None:
        self.attendance = attendance
        self.sink = sink or NullLogSink()
        self.entitlements = entitlements or entitlement_service
        self.referrals = referrals or referral_service
        self.catalog = catalog or course_catalog
        self._uow = uow
        self.bot_username = bot_username
        self.sessions = SessionRegistry()
        self.locks = UserLocks()

    async def handle(self, event: InboundEvent) -> list[Reply]:
        """Run one transition for ``event.user_id``.

        Events of the same user run one at a time. Whatever goes wrong inside
        a transition, the user ends up in the main menu with a fresh session.
        """
        async with self.locks.hold(event.user_id):
            turn = _Turn(event=event, session=self.sessions.get(event.user_id))
            try:
                await self._dispatch(turn)
            except Exception as e:
                log.exception(
                    "conversation_transition_failed user_id=%s kind=%s state=%s",
                    event.user_id,
                    event.kind,
                    turn.session.state.value,
                    extra=turn.log_extra,
                )
                await self.sink.log_event(
                    f"🚨 <b>Unhandled error in bot logic</b>\nUser: <code>{event.user_id}</code>\n"
                    f"Input: <code>{escape(event.payload[:200])}</code>\nError: <code>{escape(repr(e)[:500])}</code>"
                )
                self.sessions.clear(event.user_id)
                turn = _Turn(event=event, session=self.sessions.get(event.user_id))
                turn.say(GENERIC_FAILURE)
                turn.main_menu()
            return turn.replies

    def session_state(self, user_id: int) -> DialogState | None:
        session = self.sessions.peek(user_id)
        return session.state if session else None

    # ---- dispatch ------------------------------------------------------------
    async def _dispatch(self, turn: _Turn) -> None:
        event = turn.event
        if event.kind == "callback":
            await self._on_callback(turn, event.payload)
            return

        raw = (event.payload or "").strip()
        token = raw.lower()
        command, _, arg = token.partition(" ")
        state = turn.session.state

        if command == "/start":
            await self._on_start(turn, raw.partition(" ")[2].strip())
        elif token == "back" and state != DialogState.MAIN_MENU:
            self._reset(turn)
            turn.main_menu("Returning to the main menu.")
        elif token == "/plans":
            await self._show_plans(turn)
        elif token == "/status":
            await self._show_status(turn)
        elif token == "/invite":
            await self._show_invite(turn)
        elif token == "/hiddenfeature":
            await self._show_hidden_feature(turn)
        elif command == "/buy":
            await self._on_buy(turn, arg.strip())
        elif state == DialogState.AWAITING_PAYMENT_CONFIRMATION and token == "yes":
            await self._on_payment_confirmed(turn)
        elif state == DialogState.AWAITING_QUERY_TEXT:
            await self._on_query_text(turn, raw)
        elif state == DialogState.AWAITING_COURSE_SELECTION:
            await self._on_course_input(turn, token)
        elif state == DialogState.AWAITING_PHONE:
            await self._on_phone(turn, token)
        elif state == DialogState.MAIN_MENU:
            turn.main_menu("Please select an option using the buttons below.")
            await self.sink.log_event(
                f"❓ User <code>{turn.user_id}</code> sent unexpected text in the main menu: "
                f"<code>{escape(raw[:200])}</code>."
            )
        else:
            log.info(
                "conversation_unexpected_input user_id=%s state=%s", turn.user_id, state.value, extra=turn.log_extra
            )
            await self.sink.log_event(
                f"⚠️ User <code>{turn.user_id}</code> in state <code>{state.value}</code> sent "
                f"<code>{escape(raw[:200])}</code>. Session cleared."
            )
            self._reset(turn)
            turn.say("I'm not sure what you mean. Let's get you back to the main menu.")
            turn.main_menu()

    async def _on_callback(self, turn: _Turn, data: str) -> None:
        if data == CB_CHECK_ATTENDANCE:
            await self._start_course_selection(turn)
        elif data == CB_MY_STATUS:
            await self._show_status(turn)
        elif data == CB_PLANS:
            await self._show_plans(turn)
        elif data == CB_INVITE_EARN:
            await self._show_invite(turn)
        elif data == CB_TALK_WITH_US:
            turn.session.state = DialogState.AWAITING_QUERY_TEXT
            turn.say("Please type your query or feedback now. I will forward it to the admin. Type /cancel to go back.")
        else:
            log.info("conversation_unknown_callback user_id=%s data=%s", turn.user_id, data, extra=turn.log_extra)
            turn.main_menu("I didn't understand that. Please choose from the main menu.")

    def _reset(self, turn: _Turn) -> None:
        self.sessions.clear(turn.user_id)
        turn.session = self.sessions.get(turn.user_id)

    # ---- /start --------------------------------------------------------------
    async def _on_start(self, turn: _Turn, arg: str) -> None:
        event = turn.event
        referrer_id = parse_referral_payload(arg)
        self._reset(turn)

        async with self._uow() as store:
            is_new = await self.referrals.record_user(
                store, event.user_id, username=event.username, first_name=event.first_name
            )
            if referrer_id is not None and is_new:
                result = await self.referrals.record_referral(
                    store, referrer_id, event.user_id, referred_is_new=True
                )
                if result.success and not await self.entitlements.has_received_referral_benefit(
                    store, event.user_id
                ):
                    await self.entitlements.apply_referral_benefit(store, event.user_id)
                    await self.entitlements.mark_referral_benefit_received(store, event.user_id)
            else:
                result = None

        if result is not None and result.success:
            turn.say(f"🎉 Welcome! {escape(result.message)}")
            await self.sink.log_event(
                f"🔗 User <code>{event.user_id}</code> joined via referral from <code>{referrer_id}</code>."
            )
        elif result is not None:
            turn.say(f"👋 Welcome! There was an issue with your referral: {escape(result.message)}")
            await self.sink.log_event(
                f"⚠️ User <code>{event.user_id}</code> came via referral from <code>{referrer_id}</code>, "
                f"but it failed: {escape(result.message)}"
            )
        elif referrer_id is not None:
            turn.say("👋 Welcome back! It looks like you've already started the bot before.")
        else:
            turn.say("👋 Welcome! How can I help you today?")
        turn.main_menu()

    # ---- informational -------------------------------------------------------
    async def _show_status(self, turn: _Turn) -> None:
        async with self._uow() as store:
            text = await self.entitlements.usage_status_summary(store, turn.user_id)
        turn.say(text)
        turn.main_menu("Here's your status. What's next?")

    async def _show_plans(self, turn: _Turn) -> None:
        turn.session.state = DialogState.SHOWING_PLANS
        turn.say(plans_message())
        turn.main_menu("Explore our plans! What's next?")

    async def _show_invite(self, turn: _Turn) -> None:
        link = f"https://t.me/{self.bot_username or 'bot'}?start=ref_{turn.user_id}"
        turn.say(
            "🎉 <b>Invite & Earn Rewards!</b> 🎉\n\n"
            f"Share this link with your friends:\n<code>{link}</code>\n\n"
            "When a new user joins via your link, you'll earn special rewards!"
        )
        turn.main_menu("Spread the word!")

    async def _show_hidden_feature(self, turn: _Turn) -> None:
        async with self._uow() as store:
            feature = await self.entitlements.unlocked_feature(store, turn.user_id)
        content = FEATURE_CONTENT.get(feature or "")
        if content:
            turn.say(content)
            await self.sink.log_event(f"🎁 User <code>{turn.user_id}</code> opened feature <b>{feature}</b>.")
        else:
            turn.say("🔐 This is a premium attendance boosting feature. Please enroll in a program to unlock it!")
        turn.main_menu()

    # ---- enrolment -----------------------------------------------------------
    async def _on_buy(self, turn: _Turn, plan_key: str) -> None:
        plan = get_plan(plan_key)
        if plan is None:
            # state is left as it was
            turn.replies.append(Reply("❌ Invalid program. Please use /plans to see available options.", menu=True))
            return

        turn.session.state = DialogState.AWAITING_PAYMENT_CONFIRMATION
        turn.session.pending_plan_key = plan.key
        turn.say(
            f"To confirm enrollment in <b>{plan.name}</b> for {plan.price} Rs, reply 'yes'. "
            "(This is a mock payment for now.)"
        )
        await self.sink.log_event(f"💳 User <code>{turn.user_id}</code> is buying <b>{plan.name}</b>.")

    async def _on_payment_confirmed(self, turn: _Turn) -> None:
        plan = get_plan(turn.session.pending_plan_key)
        async with self._uow() as store:
            ok = plan is not None and await self.entitlements.activate_plan(store, turn.user_id, plan.key)
        turn.session.pending_plan_key = None

        if ok:
            turn.say(
                f"🎉 Congratulations! You have successfully enrolled in the <b>{plan.name}</b>. "
                "We're excited to help you boost your attendance! Type /status to verify."
            )
            await self.sink.log_event(f"💰 User <code>{turn.user_id}</code> enrolled in <b>{plan.name}</b>.")
        else:
            turn.say("❌ Payment failed or program activation error. Please try again or contact support.")
            await self.sink.log_event(f"⛔ Enrollment failed for user <code>{turn.user_id}</code>.")
        turn.main_menu()

    # ---- queries -------------------------------------------------------------
    async def _on_query_text(self, turn: _Turn, raw: str) -> None:
        if raw.lower() == "/cancel":
            turn.say("Query submission cancelled. Returning to the main menu.")
            turn.main_menu()
            return

        await self.sink.forward_query(
            f"📢 <b>User Query from {turn.user_id}:</b>\n\n<pre>{escape(raw)}</pre>"
        )
        turn.say(
            "Thank you! Your query has been successfully submitted. "
            "We will get back to you if needed. Returning to the main menu."
        )
        turn.main_menu()

    # ---- attendance check ----------------------------------------------------
    async def _start_course_selection(self, turn: _Turn) -> None:
        turn.session.state = DialogState.AWAITING_COURSE_SELECTION
        turn.session.course_page = 0
        async with self._uow() as store:
            page = await self.catalog.get_page(store, 0)
        turn.say(page_message(page))

    async def _on_course_input(self, turn: _Turn, token: str) -> None:
        session = turn.session
        try:
            if token in ("f", "b"):
                await self._turn_page(turn, forward=token == "f")
            elif token.isascii() and token.isdigit():
                async with self._uow() as store:
                    course = await self.catalog.get_by_ordinal(store, int(token))
                if course is None:
                    raise ValidationError(
                        "❌ Invalid course number. Please use 'f', 'b', or enter a valid number from the list."
                    )
                session.selected_course_id = course.external_id
                session.selected_course_name = course.name
                session.state = DialogState.AWAITING_PHONE
                turn.say(
                    f"You selected: <b>{escape(course.name)}</b>. "
                    "Please enter your <b>10-digit phone number</b> to check your attendance:"
                )
            else:
                raise ValidationError(
                    "❌ Invalid input. To navigate, reply 'f' for next, 'b' for back, "
                    "or enter a number to choose a course."
                )
        except ValidationError as e:
            turn.say(f"{e}\n\n{BACK_HINT}")

    async def _turn_page(self, turn: _Turn, *, forward: bool) -> None:
        session = turn.session
        async with self._uow() as store:
            total_pages = await self.catalog.total_pages(store)
            target = session.course_page + (1 if forward else -1)
            if forward and target > total_pages - 1:
                raise ValidationError(
                    "🚫 You're already at the <b>last page</b>. Use 'b' to go back or select a course number."
                )
            if not forward and target < 0:
                raise ValidationError(
                    "🚫 You're already at the <b>first page</b>. Use 'f' to go forward or select a course number."
                )
            page = await self.catalog.get_page(store, target)
        session.course_page = target
        turn.say(page_message(page))

    async def _on_phone(self, turn: _Turn, phone: str) -> None:
        session = turn.session
        if not PHONE_RE.match(phone):
            turn.say(
                "❌ Invalid phone number format. Please enter a valid <b>10-digit mobile number</b>, "
                f"like <code>9876543210</code>.\n\n{BACK_HINT}"
            )
            await self.sink.log_event(
                f"❌ User <code>{turn.user_id}</code> entered an invalid phone format: "
                f"<code>{escape(phone[:50])}</code>."
            )
            return

        if not session.selected_course_id:
            log.warning("conversation_course_missing user_id=%s", turn.user_id, extra=turn.log_extra)
            await self.sink.log_event(
                f"⚠️ Missing course for <code>{turn.user_id}</code> while awaiting a phone number. Session cleared."
            )
            self._reset(turn)
            turn.say("It seems I lost track of your course selection. Please start again from the main menu.")
            turn.main_menu()
            return

        session.phone_number = phone
        try:
            await self._check_attendance(turn, phone)
        except NotAllowedError as e:
            turn.say(
                f"{e}\n\nTo continue, please purchase a plan using /plans "
                "or choose another option from the main menu."
            )
            turn.main_menu()

    async def _check_attendance(self, turn: _Turn, phone: str) -> None:
        session = turn.session
        course_id = session.selected_course_id or ""
        course_name = escape(session.selected_course_name or "")

        async with self._uow() as store:
            decision = await self.entitlements.can_perform_check(store, turn.user_id)
            if not decision.allowed:
                status = await self.entitlements.usage_status_summary(store, turn.user_id)
        if not decision.allowed:
            log.info("attendance_check_denied user_id=%s", turn.user_id, extra=turn.log_extra)
            await self.sink.log_event(f"🚫 User <code>{turn.user_id}</code> hit the free check limit.")
            raise NotAllowedError(f"🚫 {status}")

        result = await self.attendance.fetch_attendance(course_id, phone)
        await self._report_lookup(turn, phone, result)

        if not result.success:
            turn.say(
                f"An error occurred: {escape(result.message or 'unknown error')}\n\n"
                f"Type your <b>10-digit number</b> again for <b>{course_name}</b>, "
                "or type 'back' to return to the main menu."
            )
            return

        async with self._uow() as store:
            if decision.reason == REASON_FREE_LIMIT:
                await self.entitlements.record_free_check(store, turn.user_id)
            status = await self.entitlements.usage_status_summary(store, turn.user_id)

        student = result.data
        turn.say(
            f"✅ Attendance Report for <b>{escape(student.name)}</b> in <b>{course_name}</b>:\n"
            f"Lectures Attended: {student.attended}\n"
            f"Total Lectures: {student.total}\n"
            f"Percentage: {student.percentage}%\n\n"
            f"{status}\n\n"
            "Would you like to check attendance for another number in <b>this course</b>? "
            "Please enter a new <b>10-digit number</b>. Or type 'back' to return to the main menu."
        )

    async def _report_lookup(self, turn: _Turn, phone: str, result: AttendanceResult) -> None:
        course_name = escape(turn.session.selected_course_name or "")
        if result.success and result.data is not None:
            s = result.data
            log.info("attendance_check_ok user_id=%s class_id=%s", turn.user_id, turn.session.selected_course_id)
            await self.sink.log_event(
                f"✅ <b>Attendance Check Success</b>\nUser: <code>{turn.user_id}</code>\n"
                f"Phone: <code>{phone}</code>\nCourse: {course_name}\n"
                f"Att: {s.attended}/{s.total} ({s.percentage}%)"
            )
            return

        log.info(
            "attendance_check_failed user_id=%s class_id=%s status=%s",
            turn.user_id,
            turn.session.selected_course_id,
            result.status,
        )
        text = (
            f"❌ <b>Attendance Check Failed</b>\nUser: <code>{turn.user_id}</code>\n"
            f"Phone: <code>{phone}</code>\nCourse: {course_name}\nReason: {escape(result.message or '')}"
        )
        if result.status is not None:
            text += f"\nStatus: {result.status}"
        if result.detail:
            text += f"\nDetail: <code>{escape(result.detail[:300])}</code>"
        await self.sink.log_event(text)
