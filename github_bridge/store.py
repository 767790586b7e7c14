from typing import Dict, Iterable, Iterator, List, Optional

from .models import ForumTagInfo, Thread


class ThreadStore:
    """In-memory threads mirrored to GitHub, keyed by Discord thread id."""

    def __init__(self) -> None:
        self._threads: Dict[int, Thread] = {}
        self._tags: Dict[int, ForumTagInfo] = {}

    def __len__(self) -> int:
        return len(self._threads)

    def __iter__(self) -> Iterator[Thread]:
        return iter(list(self._threads.values()))

    def __contains__(self, thread_id: int) -> bool:
        return thread_id in self._threads

    def get(self, thread_id: int) -> Optional[Thread]:
        return self._threads.get(thread_id)

    def add(self, thread: Thread) -> Thread:
        """Insert ``thread`` unless one with the same id exists; return the stored one."""
        return self._threads.setdefault(thread.id, thread)

    def remove(self, thread_id: int) -> Optional[Thread]:
        return self._threads.pop(thread_id, None)

    def replace_all(self, threads: Iterable[Thread]) -> None:
        self._threads = {thread.id: thread for thread in threads}

    # Forum tags

    @property
    def available_tags(self) -> List[ForumTagInfo]:
        return list(self._tags.values())

    def set_available_tags(self, tags: Iterable[ForumTagInfo]) -> None:
        self._tags = {tag.id: tag for tag in tags}

    def tag_name(self, tag_id: int) -> Optional[str]:
        tag = self._tags.get(tag_id)
        return tag.name if tag else None
