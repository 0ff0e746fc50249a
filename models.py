import threading
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional
from pydantic import BaseModel
from schemas import UserUpdate


class User(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    created_at: datetime
    updated_at: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def seed_users() -> List[User]:
    """Two demo records loaded in every default store."""
    return [
        User(
            id="1",
            email="john.doe@example.com",
            first_name="John",
            last_name="Doe",
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        ),
        User(
            id="2",
            email="jane.smith@example.com",
            first_name="Jane",
            last_name="Smith",
            created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
            updated_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        ),
    ]


def apply_update(user: User, changes: UserUpdate, now: datetime) -> User:
    """Merge the provided fields of ``changes`` into a copy of ``user``."""
    fields = {}
    if changes.email is not None:
        fields["email"] = changes.email
    if changes.first_name is not None:
        fields["first_name"] = changes.first_name
    if changes.last_name is not None:
        fields["last_name"] = changes.last_name
    # updated_at ne recule jamais, même si l'horloge le fait
    fields["updated_at"] = max(now, user.updated_at)
    return user.model_copy(update=fields)


class UserStore:
    """In-memory, insertion-ordered collection of users.

    Lookups that miss return None (or False for delete) instead of raising;
    the HTTP layer decides how to report them. Records handed out are copies,
    the store keeps the only reference to its own instances.
    """

    def __init__(self, users: Optional[Iterable[User]] = None, clock: Callable[[], datetime] = utcnow):
        self._users: List[User] = list(seed_users() if users is None else users)
        self._clock = clock
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._users)

    def _index_of(self, user_id: str) -> Optional[int]:
        for index, user in enumerate(self._users):
            if user.id == user_id:
                return index
        return None

    def create(self, email: str, first_name: str, last_name: str) -> User:
        with self._lock:
            now = self._clock()
            # Id = taille + 1 : peut entrer en collision après une suppression
            user = User(
                id=str(len(self._users) + 1),
                email=email,
                first_name=first_name,
                last_name=last_name,
                created_at=now,
                updated_at=now,
            )
            self._users.append(user)
            return user.model_copy()

    def find_all(self) -> List[User]:
        with self._lock:
            return [u.model_copy() for u in self._users]

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            index = self._index_of(user_id)
            if index is None:
                return None
            return self._users[index].model_copy()

    def update(self, user_id: str, changes: UserUpdate) -> Optional[User]:
        with self._lock:
            index = self._index_of(user_id)
            if index is None:
                return None
            updated = apply_update(self._users[index], changes, self._clock())
            self._users[index] = updated
            return updated.model_copy()

    def delete(self, user_id: str) -> bool:
        with self._lock:
            index = self._index_of(user_id)
            if index is None:
                return False
            del self._users[index]
            return True
