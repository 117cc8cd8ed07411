from __future__ import annotations

from crosspost.core.models import PostStatus

# A publish attempt moves draft -> posted|failed exactly once. Re-publishing a
# finished draft resets it to draft first; there is no separate republish state.
_ALLOWED_TRANSITIONS: dict[PostStatus, set[PostStatus]] = {
    PostStatus.DRAFT: {PostStatus.POSTED, PostStatus.FAILED},
    PostStatus.POSTED: {PostStatus.DRAFT},
    PostStatus.FAILED: {PostStatus.DRAFT},
}


def can_transition(current: PostStatus, target: PostStatus) -> bool:
    return target in _ALLOWED_TRANSITIONS[current]


def ensure_transition(current: PostStatus, target: PostStatus) -> None:
    if not can_transition(current, target):
        raise ValueError(f"Illegal state transition: {current.value} -> {target.value}")
