"""Read models for the social graph: privacy settings and user profiles.

Both are owned by other subsystems (settings, accounts). The chat server
only reads them, so there is no ``to_db_doc`` here.
"""
import logging
from typing import Optional, Dict, Any, Iterable
from enum import Enum

logger = logging.getLogger(__name__)


class MessagingPolicy(str, Enum):
    EVERYONE = "everyone"
    FRIENDS = "friends"
    NONE = "none"


class ProfileVisibility(str, Enum):
    PUBLIC = "public"
    FRIENDS = "friends"
    PRIVATE = "private"


def stored_tier(enum_cls, value, default, user_id=None):
    """Parse a stored tier value, falling back to ``default`` when it is not recognised."""
    if not value:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Unknown %s %r in settings of %s, using %s",
                       enum_cls.__name__, value, user_id, default.value)
        return default


class NotificationEvent(str, Enum):
    """Keys of ``notifications.in_app`` in a settings record."""
    MESSAGE_RECEIVED = "message_received"
    NEW_FOLLOWER = "new_follower"
    POST_LIKED = "post_liked"
    POST_COMMENTED = "post_commented"
    MENTIONED = "mentioned"
    SYSTEM_UPDATES = "system_updates"


class PrivacySettings:
    """The slice of a user's settings record the access gate evaluates."""

    def __init__(
        self,
        user_id: str,
        allow_messages_from: MessagingPolicy = MessagingPolicy.FRIENDS,
        profile_visibility: ProfileVisibility = ProfileVisibility.PUBLIC,
        blocked_users: Optional[Iterable[str]] = None,
        notification_preferences: Optional[Dict[str, bool]] = None,
        is_deactivated: bool = False,
    ):
        self.user_id = user_id
        self.allow_messages_from = MessagingPolicy(allow_messages_from)
        self.profile_visibility = ProfileVisibility(profile_visibility)
        self.blocked_users = set(blocked_users or [])
        self.notification_preferences = dict(notification_preferences or {})
        self.is_deactivated = bool(is_deactivated)

    def has_blocked(self, other_user_id: str) -> bool:
        return other_user_id in self.blocked_users

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'PrivacySettings':
        privacy = doc.get('privacy') or {}
        security = doc.get('security') or {}
        notifications = doc.get('notifications') or {}
        account = doc.get('account') or {}
        return cls(
            user_id=doc.get('user_id'),
            allow_messages_from=stored_tier(MessagingPolicy, privacy.get('allow_messages_from'),
                                            MessagingPolicy.FRIENDS, doc.get('user_id')),
            profile_visibility=stored_tier(ProfileVisibility, privacy.get('profile_visibility'),
                                           ProfileVisibility.PUBLIC, doc.get('user_id')),
            blocked_users=security.get('blocked_users') or [],
            notification_preferences=notifications.get('in_app') or {},
            is_deactivated=account.get('is_deactivated', False),
        )


class UserProfile:
    """Directory entry: display fields plus outgoing follow edges."""

    def __init__(self, user_id: str, username: Optional[str] = None, name: Optional[str] = None,
                 avatar: Optional[str] = None, following: Optional[Iterable[str]] = None):
        self.user_id = user_id
        self.username = username
        self.name = name
        self.avatar = avatar
        self.following = set(following or [])

    @property
    def display_name(self) -> str:
        return self.username or self.name or 'Someone'

    def to_dict(self) -> Dict[str, Any]:
        return {'userId': self.user_id, 'username': self.username, 'name': self.name, 'avatar': self.avatar}

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'UserProfile':
        return cls(
            user_id=doc.get('user_id'),
            username=doc.get('username'),
            name=doc.get('name'),
            avatar=doc.get('avatar'),
            following=doc.get('following') or [],
        )
