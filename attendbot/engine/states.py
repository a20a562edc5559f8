from __future__ import annotations

from enum import Enum


class DialogState(str, Enum):
    START = "START"
    MAIN_MENU = "MAIN_MENU"
    AWAITING_COURSE_SELECTION = "AWAITING_COURSE_SELECTION"
    AWAITING_PHONE = "AWAITING_PHONE"
    AWAITING_PAYMENT_CONFIRMATION = "AWAITING_PAYMENT_CONFIRMATION"
    AWAITING_QUERY_TEXT = "AWAITING_QUERY_TEXT"
    SHOWING_PLANS = "SHOWING_PLANS"
