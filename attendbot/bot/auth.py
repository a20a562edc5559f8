from attendbot.core.config import settings


def is_admin(tg_id: int) -> bool:
    if settings.admin_chat_id is None:
        return False
    return int(tg_id) == int(settings.admin_chat_id)
