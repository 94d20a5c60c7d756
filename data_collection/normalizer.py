"""Normalise raw actor records into ``Creator`` and ``ContentPost``.

The scraping actors have changed their output shape across revisions, so
the same value can arrive under a camelCase key (current output) or a
snake_case key (older output).  Each domain field is read through a
``FieldExtractor``: an ordered tuple of keys, tried first to last, whose
first usable value wins.  Keeping the key order in one table makes the
precedence rules easy to audit and to test.

Records that cannot be mapped (not a dict, no username for a creator, no
short code and no URL for a post) are dropped rather than emitted as empty
entries.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from creatorlogic.schemas import ContentPost, Creator, MusicAttribution

from .utils import parse_abbreviated_count

logger = logging.getLogger(__name__)

Raw = Mapping[str, Any]

_HASHTAG_RE = re.compile(r"#(\w+)")


@dataclass(frozen=True)
class FieldExtractor:
    """Look up the first present value among ``keys``.

    ``None`` and empty strings count as absent; ``0`` and ``False`` do not.
    """

    keys: Tuple[str, ...]

    def __call__(self, raw: Raw, default: Any = None) -> Any:
        for key in self.keys:
            value = raw.get(key)
            if value is None or value == "":
                continue
            return value
        return default


def fields(*keys: str) -> FieldExtractor:
    return FieldExtractor(tuple(keys))


# Creator fields
CREATOR_ID = fields("id", "pk", "userId", "user_id")
USERNAME = fields("username", "userName", "user_name")
FULL_NAME = fields("fullName", "full_name")
AVATAR_URL = fields("profilePicUrlHD", "profilePicUrl", "profile_pic_url_hd", "profile_pic_url")
IS_VERIFIED = fields("verified", "isVerified", "is_verified")
IS_PRIVATE = fields("isPrivate", "private", "is_private")
IS_BUSINESS = fields("isBusinessAccount", "is_business_account", "is_business")
BIOGRAPHY = fields("biography", "bio")
EXTERNAL_URL = fields("externalUrl", "external_url")
CATEGORY = fields("businessCategoryName", "categoryName", "category_name", "category")
# Only an explicit public-email field is trusted; bios are never mined.
PUBLIC_EMAIL = fields("publicEmail", "public_email")
FOLLOWER_COUNT = fields("followersCount", "followerCount", "follower_count", "followers")
FOLLOWER_LABEL = fields(
    "followersText",
    "followers_text",
    "followerCountText",
    "socialContext",
    "social_context",
    "subtitle",
)
FOLLOWING_COUNT = fields("followsCount", "followingCount", "following_count")
POST_COUNT = fields("postsCount", "mediaCount", "media_count", "posts_count")
PROFILE_LINK = fields("url", "profileUrl", "instagram_url")

# Content post fields
POST_ID = fields("id", "pk")
POST_TYPE = fields("type", "productType", "media_type")
SHORT_CODE = fields("shortCode", "short_code", "code")
CAPTION = fields("caption", "text")
HASHTAGS = fields("hashtags", "hashTags")
POST_URL = fields("url", "postUrl", "post_url")
INPUT_URL = fields("inputUrl", "input_url")
COMMENT_COUNT = fields("commentsCount", "comments_count", "comment_count")
LIKE_COUNT = fields("likesCount", "likes_count", "like_count")
SHARE_COUNT = fields("sharesCount", "shares_count", "share_count")
TIMESTAMP = fields("timestamp", "takenAt", "taken_at")
VIEW_COUNT = fields("videoViewCount", "video_view_count", "viewCount", "view_count")
PLAY_COUNT = fields("videoPlayCount", "video_play_count", "playCount", "play_count")
DURATION = fields("videoDuration", "video_duration", "duration")
THUMBNAIL_URL = fields("displayUrl", "display_url", "thumbnailUrl", "thumbnail_src")
MUSIC = fields("musicInfo", "music_info")
ARTIST_NAME = fields("artist_name", "artistName")
TRACK_NAME = fields("song_name", "songName", "track_name")

# Seed follower count on analytics runs
OWNER_FOLLOWER_COUNT = fields("ownerFollowerCount", "owner_follower_count")


def _to_count(value: Any) -> Optional[int]:
    """Coerce a raw count to a non-negative int, or None if unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return max(0, int(round(value)))
    if isinstance(value, str):
        parsed = parse_abbreviated_count(value)
        return max(0, parsed) if parsed is not None else None
    return None


def _to_bool(value: Any) -> bool:
    return bool(value)


# Text the creator writes themselves; a "10k followers" there is prose, not a count.
_FREE_TEXT_KEYS = frozenset(BIOGRAPHY.keys + CAPTION.keys + FULL_NAME.keys)


def _follower_count(raw: Raw) -> int:
    numeric = _to_count(FOLLOWER_COUNT(raw))
    if numeric is not None:
        return numeric
    label = FOLLOWER_LABEL(raw)
    candidates = [label] if isinstance(label, str) else []
    # Some actor revisions only ship the count inside a free-form label.
    candidates.extend(
        value
        for key, value in raw.items()
        if key not in _FREE_TEXT_KEYS and isinstance(value, str) and "follower" in value.lower()
    )
    for text in candidates:
        if "follower" not in text.lower():
            continue
        parsed = parse_abbreviated_count(text)
        if parsed is not None:
            return parsed
    return 0


def normalize_creator(raw: Any) -> Optional[Creator]:
    """Map one discovery record to a ``Creator``; None if unmappable."""
    if not isinstance(raw, Mapping):
        return None
    username = USERNAME(raw)
    if not isinstance(username, str) or not username.strip():
        return None
    username = username.strip().lstrip("@")
    email = PUBLIC_EMAIL(raw)
    try:
        return _build_creator(raw, username, email)
    except ValidationError as exc:
        logger.debug("Dropping creator record %s: %s", username, exc)
        return None


def _build_creator(raw: Raw, username: str, email: Any) -> Creator:
    return Creator(
        id=str(CREATOR_ID(raw, username)),
        username=username,
        full_name=FULL_NAME(raw, ""),
        avatar_url=AVATAR_URL(raw, f"https://ui-avatars.com/api/?name={username}"),
        is_verified=_to_bool(IS_VERIFIED(raw)),
        is_private=_to_bool(IS_PRIVATE(raw)),
        is_business_account=_to_bool(IS_BUSINESS(raw)),
        biography=BIOGRAPHY(raw, ""),
        external_url=EXTERNAL_URL(raw),
        category=CATEGORY(raw),
        email=email.strip() if isinstance(email, str) else None,
        follower_count=_follower_count(raw),
        following_count=_to_count(FOLLOWING_COUNT(raw)) or 0,
        post_count=_to_count(POST_COUNT(raw)) or 0,
        profile_link=PROFILE_LINK(raw, f"https://instagram.com/{username}"),
    )


def _hashtags(raw: Raw, caption: str) -> List[str]:
    tags = HASHTAGS(raw)
    if isinstance(tags, list) and tags:
        return [str(tag).lstrip("#") for tag in tags]
    seen: Dict[str, None] = {}
    for tag in _HASHTAG_RE.findall(caption):
        seen.setdefault(tag, None)
    return list(seen)


def _music(raw: Raw) -> Optional[MusicAttribution]:
    info = MUSIC(raw)
    if not isinstance(info, Mapping):
        return None
    artist, track = ARTIST_NAME(info), TRACK_NAME(info)
    if artist is None and track is None:
        return None
    return MusicAttribution(artist_name=artist, track_name=track)


def normalize_content_post(raw: Any) -> Optional[ContentPost]:
    """Map one analytics record to a ``ContentPost``; None if unmappable."""
    if not isinstance(raw, Mapping):
        return None
    short_code = str(SHORT_CODE(raw, ""))
    url = str(POST_URL(raw, ""))
    if not short_code and not url:
        return None
    if not url:
        url = f"https://www.instagram.com/reel/{short_code}/"
    try:
        return _build_content_post(raw, short_code, url)
    except ValidationError as exc:
        logger.debug("Dropping post record %s: %s", short_code or url, exc)
        return None


def _build_content_post(raw: Raw, short_code: str, url: str) -> ContentPost:
    caption = CAPTION(raw, "") or ""
    if not isinstance(caption, str):
        caption = str(caption)
    duration = DURATION(raw)
    return ContentPost(
        id=str(POST_ID(raw, short_code or uuid.uuid4().hex)),
        type=POST_TYPE(raw),
        short_code=short_code,
        caption=caption,
        hashtags=_hashtags(raw, caption),
        url=url,
        input_url=INPUT_URL(raw),
        comment_count=_to_count(COMMENT_COUNT(raw)) or 0,
        like_count=_to_count(LIKE_COUNT(raw)) or 0,
        share_count=_to_count(SHARE_COUNT(raw)),
        timestamp=TIMESTAMP(raw),
        view_count=_to_count(VIEW_COUNT(raw)),
        play_count=_to_count(PLAY_COUNT(raw)),
        duration_seconds=float(duration) if isinstance(duration, (int, float)) else None,
        thumbnail_url=THUMBNAIL_URL(raw, ""),
        music=_music(raw),
    )


def normalize_creators(items: Iterable[Any]) -> List[Creator]:
    return [creator for creator in map(normalize_creator, items) if creator is not None]


def normalize_content_posts(items: Iterable[Any]) -> List[ContentPost]:
    return [post for post in map(normalize_content_post, items) if post is not None]


def seed_follower_count(items: List[Any]) -> Optional[int]:
    """Follower count of the account an analytics run was pointed at.

    Reel records carry it either flat (``ownerFollowerCount``) or nested
    under ``owner``.  Returns None when no positive count is present.
    """
    if not items or not isinstance(items[0], Mapping):
        return None
    first = items[0]
    count = _to_count(OWNER_FOLLOWER_COUNT(first))
    if not count:
        owner = first.get("owner")
        if isinstance(owner, Mapping):
            count = _to_count(FOLLOWER_COUNT(owner))
    return count or None
