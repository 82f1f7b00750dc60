"""Storage for connected social accounts and their posts."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple

from . import schemas


class SocialRepository(Protocol):
    def save_account(self, account: schemas.SocialAccount) -> schemas.SocialAccount: ...

    def get_account(
        self, user_id: str, platform: schemas.Platform
    ) -> Optional[schemas.SocialAccount]: ...

    def delete_account(self, user_id: str, platform: schemas.Platform) -> bool: ...

    def list_accounts(self, user_id: str) -> List[schemas.SocialAccount]: ...

    def add_post(self, post: schemas.SocialPost) -> schemas.SocialPost: ...

    def update_post(self, post_id: str, changes: Dict[str, Any]) -> schemas.SocialPost: ...

    def list_posts(
        self, owner_id: str, *, since: Optional[datetime] = None
    ) -> List[schemas.SocialPost]: ...

    def due_posts(self, now: datetime) -> List[schemas.SocialPost]: ...


class InMemorySocialRepository:
    def __init__(self) -> None:
        self._accounts: Dict[Tuple[str, schemas.Platform], schemas.SocialAccount] = {}
        self._posts: Dict[str, schemas.SocialPost] = {}
        self._lock = threading.Lock()

    def save_account(self, account: schemas.SocialAccount) -> schemas.SocialAccount:
        with self._lock:
            self._accounts[(account.user_id, account.platform)] = account.model_copy(deep=True)
        return account.model_copy(deep=True)

    def get_account(
        self, user_id: str, platform: schemas.Platform
    ) -> Optional[schemas.SocialAccount]:
        with self._lock:
            account = self._accounts.get((user_id, platform))
            return account.model_copy(deep=True) if account else None

    def delete_account(self, user_id: str, platform: schemas.Platform) -> bool:
        with self._lock:
            return self._accounts.pop((user_id, platform), None) is not None

    def list_accounts(self, user_id: str) -> List[schemas.SocialAccount]:
        with self._lock:
            accounts = [
                a.model_copy(deep=True) for (owner, _), a in self._accounts.items() if owner == user_id
            ]
        accounts.sort(key=lambda a: a.platform.value)
        return accounts

    def add_post(self, post: schemas.SocialPost) -> schemas.SocialPost:
        with self._lock:
            self._posts[post.id] = post.model_copy(deep=True)
        return post.model_copy(deep=True)

    def update_post(self, post_id: str, changes: Dict[str, Any]) -> schemas.SocialPost:
        with self._lock:
            post = self._posts.get(post_id)
            if post is None:
                raise KeyError(post_id)
            updated = post.model_copy(update=changes, deep=True)
            self._posts[post_id] = updated
            return updated.model_copy(deep=True)

    def list_posts(
        self, owner_id: str, *, since: Optional[datetime] = None
    ) -> List[schemas.SocialPost]:
        with self._lock:
            posts = [
                p.model_copy(deep=True)
                for p in self._posts.values()
                if p.owner_id == owner_id and (since is None or p.created_at >= since)
            ]
        posts.sort(key=lambda p: p.created_at, reverse=True)
        return posts

    def due_posts(self, now: datetime) -> List[schemas.SocialPost]:
        with self._lock:
            posts = [
                p.model_copy(deep=True)
                for p in self._posts.values()
                if p.status is schemas.PostStatus.SCHEDULED
                and p.scheduled_for is not None
                and p.scheduled_for <= now
            ]
        posts.sort(key=lambda p: p.scheduled_for)
        return posts
