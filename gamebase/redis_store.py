"""Post ranking, voting and assistant-session storage with sorted-set semantics."""

from __future__ import annotations

import json
import math
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import asdict, dataclass
from enum import Enum

PREFIX = "gamebase:"
KEY_POST_TIME_ZSET = "post:time"
KEY_POST_SCORE_ZSET = "post:score"
KEY_POST_VOTED_ZSET_PF = "post:voted:"
KEY_COMMUNITY_SET_PF = "community:"

ONE_WEEK_IN_SECONDS = 7 * 24 * 3600
SCORE_PER_VOTE = 432
SCORE_PER_COMMENT = 128
COMMUNITY_CACHE_TTL = 60

ASSISTANT_SESSION_KEY_PREFIX = "assistant_session:"
ASSISTANT_SESSION_TTL = 24 * 3600
ASSISTANT_SESSION_MAX_ITEMS = 20


def redis_key(key: str) -> str:
    """Prefix a key with the project namespace."""
    return PREFIX + key


class Order(str, Enum):
    """Ordering of post listings."""

    TIME = "time"
    SCORE = "score"


class VoteTimeExpiredError(Exception):
    """Raised when voting on a post older than one week."""

    def __init__(self, message: str = "vote time expired") -> None:
        super().__init__(message)


class VoteRepeatedError(Exception):
    """Raised when the same vote is cast twice."""

    def __init__(self, message: str = "vote repeated") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class SessionMessage:
    """One message in an assistant conversation."""

    role: str
    content: str


def compute_post_score(ai_delta: float, comments: int, up_votes: int, down_votes: int) -> float:
    """Combine AI delta, comment count and net votes into a ranking score."""
    return float(ai_delta) + comments * SCORE_PER_COMMENT + (up_votes - down_votes) * SCORE_PER_VOTE


def _order_key(order: Order | str) -> str:
    if Order(order) is Order.SCORE:
        return redis_key(KEY_POST_SCORE_ZSET)
    return redis_key(KEY_POST_TIME_ZSET)


class PostStore:
    """Keyed sorted sets, sets and strings holding post ranking state."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._zsets: dict[str, dict[str, float]] = {}
        self._sets: dict[str, set[str]] = {}
        self._strings: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    # -- key primitives -------------------------------------------------

    def _delete(self, key: str) -> None:
        self._zsets.pop(key, None)
        self._sets.pop(key, None)
        self._strings.pop(key, None)
        self._expires.pop(key, None)

    def _purge(self, key: str) -> None:
        deadline = self._expires.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._delete(key)

    def _exists(self, key: str) -> bool:
        self._purge(key)
        return key in self._zsets or key in self._sets or key in self._strings

    def _expire(self, key: str, seconds: float) -> None:
        if self._exists(key):
            self._expires[key] = self._clock() + seconds

    def _zadd(self, key: str, member: str, score: float) -> None:
        self._purge(key)
        self._zsets.setdefault(key, {})[member] = float(score)

    def _zincrby(self, key: str, delta: float, member: str) -> None:
        self._purge(key)
        zset = self._zsets.setdefault(key, {})
        zset[member] = zset.get(member, 0.0) + delta

    def _zrem(self, key: str, member: str) -> None:
        self._purge(key)
        zset = self._zsets.get(key)
        if zset is None:
            return
        zset.pop(member, None)
        if not zset:
            self._delete(key)

    def _zscore(self, key: str, member: str) -> float:
        self._purge(key)
        return self._zsets.get(key, {}).get(member, 0.0)

    def _zcount(self, key: str, low: float, high: float) -> int:
        self._purge(key)
        return sum(1 for score in self._zsets.get(key, {}).values() if low <= score <= high)

    def _zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        self._purge(key)
        ranked = sorted(
            self._zsets.get(key, {}).items(), key=lambda item: (item[1], item[0]), reverse=True
        )
        count = len(ranked)
        if start < 0:
            start += count
        if stop < 0:
            stop += count
        start = max(start, 0)
        if start > stop or start >= count:
            return []
        stop = min(stop, count - 1)
        return [member for member, _ in ranked[start : stop + 1]]

    def _sadd(self, key: str, member: str) -> None:
        self._purge(key)
        self._sets.setdefault(key, set()).add(member)

    def _srem(self, key: str, member: str) -> None:
        self._purge(key)
        members = self._sets.get(key)
        if members is None:
            return
        members.discard(member)
        if not members:
            self._delete(key)

    def _zinterstore_max(self, dest: str, set_key: str, zset_key: str) -> None:
        self._purge(set_key)
        self._purge(zset_key)
        members = self._sets.get(set_key, set())
        scores = self._zsets.get(zset_key, {})
        result = {m: max(1.0, scores[m]) for m in members if m in scores}
        self._delete(dest)
        if result:
            self._zsets[dest] = result

    def _ids_from_key(self, key: str, page: int, size: int) -> list[str]:
        start = (page - 1) * size
        return self._zrevrange(key, start, start + size - 1)

    # -- posts and votes ------------------------------------------------

    def create_post(self, post_id: int, community_id: int, now: float | None = None) -> None:
        """Register a new post in the time, score and community indexes."""
        moment = self._clock() if now is None else now
        member = str(post_id)
        self._zadd(redis_key(KEY_POST_TIME_ZSET), member, math.floor(moment))
        self._zadd(redis_key(KEY_POST_SCORE_ZSET), member, 0)
        self._sadd(redis_key(KEY_COMMUNITY_SET_PF + str(community_id)), member)

    def delete_post(self, post_id: int, community_id: int) -> None:
        """Remove a post from all indexes and drop its votes."""
        member = str(post_id)
        self._zrem(redis_key(KEY_POST_TIME_ZSET), member)
        self._zrem(redis_key(KEY_POST_SCORE_ZSET), member)
        self._delete(redis_key(KEY_POST_VOTED_ZSET_PF + member))
        self._srem(redis_key(KEY_COMMUNITY_SET_PF + str(community_id)), member)

    def add_post_score(self, post_id: int, delta: float) -> None:
        """Add delta to a post's ranking score; zero is a no-op."""
        if delta == 0:
            return
        self._zincrby(redis_key(KEY_POST_SCORE_ZSET), float(delta), str(post_id))

    def add_comment_score(self, post_id: int) -> None:
        """Raise a post's ranking score for one new comment."""
        self.add_post_score(post_id, SCORE_PER_COMMENT)

    def vote_for_post(self, user_id: str, post_id: str, value: float, now: float | None = None) -> None:
        """Cast, change or withdraw (by repeating) a user's vote on a post."""
        moment = self._clock() if now is None else now
        user, post = str(user_id), str(post_id)
        post_time = self._zscore(redis_key(KEY_POST_TIME_ZSET), post)
        if float(math.floor(moment)) - post_time > ONE_WEEK_IN_SECONDS:
            raise VoteTimeExpiredError()

        voted_key = redis_key(KEY_POST_VOTED_ZSET_PF + post)
        old = self._zscore(voted_key, user)
        value = float(value)
        if value == old:
            value = 0.0
        direction = 1.0 if value > old else -1.0
        diff = abs(old - value)
        self._zincrby(redis_key(KEY_POST_SCORE_ZSET), direction * diff * SCORE_PER_VOTE, post)
        if value == 0:
            self._zrem(voted_key, user)
        else:
            self._zadd(voted_key, user, value)

    def post_ids_in_order(self, order: Order | str, page: int, size: int) -> list[str]:
        """Return one page of post ids, highest time or score first."""
        return self._ids_from_key(_order_key(order), page, size)

    def community_post_ids_in_order(
        self, community_id: int, order: Order | str, page: int, size: int
    ) -> list[str]:
        """Return one page of a community's post ids, cached for a minute."""
        order_key = _order_key(order)
        community_key = redis_key(KEY_COMMUNITY_SET_PF + str(community_id))
        cache_key = order_key + str(community_id)
        if not self._exists(cache_key):
            self._zinterstore_max(cache_key, community_key, order_key)
            self._expire(cache_key, COMMUNITY_CACHE_TTL)
        return self._ids_from_key(cache_key, page, size)

    def post_vote_data(self, ids: Iterable[str]) -> list[int]:
        """Return the number of up votes for each post id."""
        return [self._zcount(redis_key(KEY_POST_VOTED_ZSET_PF + str(i)), 1, 1) for i in ids]

    def rebuild_scores(
        self,
        post_ids: Iterable[int],
        ai_scores: Mapping[int, float],
        comment_counts: Mapping[int, int],
    ) -> int:
        """Recompute every post's ranking score from scratch; return the post count."""
        posts = list(post_ids)
        score_key = redis_key(KEY_POST_SCORE_ZSET)
        self._delete(score_key)
        for post_id in posts:
            voted_key = redis_key(KEY_POST_VOTED_ZSET_PF + str(post_id))
            up_votes = self._zcount(voted_key, 1, 1)
            down_votes = self._zcount(voted_key, -1, -1)
            score = compute_post_score(
                ai_scores.get(post_id, 0.0), comment_counts.get(post_id, 0), up_votes, down_votes
            )
            self._zadd(score_key, str(post_id), score)
        return len(posts)

    # -- assistant sessions ---------------------------------------------

    def get_session_messages(self, session_id: str) -> list[SessionMessage]:
        """Load the stored conversation for a session; empty when absent."""
        key = ASSISTANT_SESSION_KEY_PREFIX + session_id
        self._purge(key)
        raw = self._strings.get(key)
        if not raw:
            return []
        data = json.loads(raw)
        if data is None:
            return []
        if not isinstance(data, list):
            raise ValueError("session payload is not a list")
        messages = []
        for item in data:
            if item is None:
                messages.append(SessionMessage("", ""))
            elif isinstance(item, dict):
                messages.append(SessionMessage(str(item.get("role", "")), str(item.get("content", ""))))
            else:
                raise ValueError("session message is not an object")
        return messages

    def save_session_messages(self, session_id: str, messages: Iterable[SessionMessage]) -> None:
        """Store the latest messages of a session with a one-day lifetime."""
        kept = list(messages)[-ASSISTANT_SESSION_MAX_ITEMS:]
        raw = json.dumps([asdict(m) for m in kept], ensure_ascii=False, separators=(",", ":"))
        key = ASSISTANT_SESSION_KEY_PREFIX + session_id
        self._delete(key)
        self._strings[key] = raw
        self._expires[key] = self._clock() + ASSISTANT_SESSION_TTL