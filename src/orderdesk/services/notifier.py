from __future__ import annotations

import logging

from psycopg import Connection

from ..domain import Notification
from ..repositories.notification_repo import NotificationRepository
from ..repositories.user_repo import UserRepository
from .side_effects import run_best_effort

log = logging.getLogger(__name__)


class Notifier:
    """Hands notifications to the dispatcher's inbox table.

    Delivery is owned by the dispatcher; callers go through SideEffects so a
    failed insert never blocks them.
    """

    def __init__(self, *, notification_repo: NotificationRepository, user_repo: UserRepository) -> None:
        self.notification_repo = notification_repo
        self.user_repo = user_repo

    def notify(self, conn: Connection, notification: Notification) -> str:
        notification_id = self.notification_repo.create(
            conn,
            user_id=notification.user_id,
            type=notification.type,
            title=notification.title,
            content=notification.content,
            data=notification.data,
        )
        log.debug("Notification %s (%s) queued for user %s", notification_id, notification.type, notification.user_id)
        return notification_id

    def broadcast(
        self,
        conn: Connection,
        *,
        roles: tuple[str, ...],
        type: str,
        title: str,
        content: str,
        data: dict,
    ) -> int:
        sent = 0
        for u in self.user_repo.list_active_by_roles(conn, roles):
            note = Notification(user_id=str(u["id"]), type=type, title=title, content=content, data=data)
            if run_best_effort(f"notify {note.user_id}", self.notify, conn, note):
                sent += 1
        return sent
