from typing import List

from ..schemas.realtime import ActiveUser
from .subscriptions import SubscriptionRegistry


class PresenceTracker:
    def __init__(self, registry: SubscriptionRegistry) -> None:
        self._registry = registry

    def active_users(self, key: str) -> List[dict]:
        """Who is on an entity's channel right now, earliest joiner first."""
        users = []
        for conn in self._registry.subscribers_of(key):
            joined_at = conn.subscriptions.get(key)
            if joined_at is None:
                continue
            users.append(ActiveUser(user_id=conn.user_id, user_name=conn.display_name, joined_at=joined_at))
        users.sort(key=lambda u: u.joined_at)
        return [u.model_dump(by_alias=True) for u in users]
