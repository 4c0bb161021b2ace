"""Social-graph access control for messaging and profile disclosure.

The module-level functions are pure: they only look at the two
``SocialRecord`` values they are given. ``AccessGate`` loads those records
from the settings and user stores and applies the policy a caller names.

Policies:
- DIRECT_MESSAGE: mutual block, then the recipient's allow-messages-from tier.
- GROUP_MEMBERSHIP: mutual block between initiator and candidate only.
- INTERACTION: mutual block between actor and the message author only.
"""
import logging
from enum import Enum
from typing import Optional, Dict, Iterable

from chat_server.exception.ChatError import ForbiddenError
from chat_server.social.models import MessagingPolicy, PrivacySettings, UserProfile

logger = logging.getLogger(__name__)


class AccessPolicy(str, Enum):
    DIRECT_MESSAGE = "direct_message"
    GROUP_MEMBERSHIP = "group_membership"
    INTERACTION = "interaction"


class AccessDecision:
    """Result of an access check; truthy when allowed."""

    def __init__(self, allowed: bool, code: Optional[str] = None, reason: Optional[str] = None):
        self.allowed = allowed
        self.code = code
        self.reason = reason

    def __bool__(self):
        return self.allowed

    def __repr__(self):
        return f"AccessDecision(allowed={self.allowed}, code={self.code!r})"

    @classmethod
    def allow(cls) -> 'AccessDecision':
        return cls(True)

    @classmethod
    def deny(cls, code: str, reason: str) -> 'AccessDecision':
        return cls(False, code, reason)


class SocialRecord:
    """Everything the gate knows about one user. ``settings`` is None when no record exists."""

    def __init__(self, user_id: str, settings: Optional[PrivacySettings] = None,
                 profile: Optional[UserProfile] = None):
        self.user_id = user_id
        self.settings = settings
        self.profile = profile

    @property
    def following(self) -> set:
        return self.profile.following if self.profile else set()


# ==========================================================================
# Pure evaluators
# ==========================================================================

def mutually_blocked(a: SocialRecord, b: SocialRecord) -> bool:
    """True when either user has the other in their blocked set."""
    if a.settings and a.settings.has_blocked(b.user_id):
        return True
    if b.settings and b.settings.has_blocked(a.user_id):
        return True
    return False


def can_deliver_message(recipient: SocialRecord, sender: SocialRecord) -> AccessDecision:
    if recipient.settings is None:
        return AccessDecision.allow()
    if mutually_blocked(recipient, sender):
        return AccessDecision.deny('blocked', 'You cannot message this user')

    policy = recipient.settings.allow_messages_from
    if policy == MessagingPolicy.EVERYONE:
        return AccessDecision.allow()
    if policy == MessagingPolicy.NONE:
        return AccessDecision.deny('none', 'This user does not accept messages')
    if sender.user_id in recipient.following and recipient.user_id in sender.following:
        return AccessDecision.allow()
    return AccessDecision.deny('friends', 'This user only accepts messages from friends')


def can_access_profile(viewer: Optional[SocialRecord], target: SocialRecord) -> AccessDecision:
    if target.settings is None:
        return AccessDecision.allow()
    if target.settings.is_deactivated:
        return AccessDecision.deny('deactivated', 'This account is deactivated')
    # Anonymous viewers are refused even for public profiles.
    if viewer is None:
        return AccessDecision.deny('private', 'This profile is private')
    if mutually_blocked(viewer, target):
        return AccessDecision.deny('blocked', 'This profile is not accessible')
    return AccessDecision.allow()


def should_notify(recipient: SocialRecord, event_type: str) -> bool:
    if recipient.settings is None:
        return True
    key = event_type.value if isinstance(event_type, Enum) else event_type
    return bool(recipient.settings.notification_preferences.get(key, True))


def evaluate(policy: AccessPolicy, actor: SocialRecord, target: SocialRecord) -> AccessDecision:
    """Apply ``policy`` with ``actor`` acting on ``target``."""
    if policy == AccessPolicy.DIRECT_MESSAGE:
        return can_deliver_message(recipient=target, sender=actor)
    if mutually_blocked(actor, target):
        if policy == AccessPolicy.GROUP_MEMBERSHIP:
            return AccessDecision.deny('blocked', f'Cannot add user {target.user_id} to this conversation')
        return AccessDecision.deny('blocked', 'You cannot interact with this user')
    return AccessDecision.allow()


# ==========================================================================
# Store-backed gate
# ==========================================================================

class AccessGate:
    """Loads social records and applies the pure evaluators above."""

    def __init__(self, user_repo, settings_repo):
        self.user_repo = user_repo
        self.settings_repo = settings_repo

    def record(self, user_id: str) -> SocialRecord:
        settings_doc = self.settings_repo.get_for_user(user_id)
        profile_doc = self.user_repo.get_profile(user_id)
        return SocialRecord(
            user_id,
            PrivacySettings.from_doc(settings_doc) if settings_doc else None,
            UserProfile.from_doc(profile_doc) if profile_doc else None,
        )

    def records(self, user_ids: Iterable[str]) -> Dict[str, SocialRecord]:
        user_ids = list(dict.fromkeys(user_ids))
        settings = self.settings_repo.get_for_users(user_ids)
        profiles = self.user_repo.get_profiles(user_ids)
        return {
            uid: SocialRecord(
                uid,
                PrivacySettings.from_doc(settings[uid]) if uid in settings else None,
                UserProfile.from_doc(profiles[uid]) if uid in profiles else None,
            )
            for uid in user_ids
        }

    def check(self, policy: AccessPolicy, actor_id: str, target_id: str) -> AccessDecision:
        recs = self.records([actor_id, target_id])
        return evaluate(policy, recs[actor_id], recs[target_id])

    def ensure(self, policy: AccessPolicy, actor_id: str, target_id: str) -> None:
        self.ensure_all(policy, actor_id, [target_id])

    def ensure_all(self, policy: AccessPolicy, actor_id: str, target_ids: Iterable[str]) -> None:
        """Raise ForbiddenError on the first target the policy denies."""
        target_ids = [t for t in target_ids if t != actor_id]
        if not target_ids:
            return
        recs = self.records([actor_id] + target_ids)
        for target_id in target_ids:
            decision = evaluate(policy, recs[actor_id], recs[target_id])
            if not decision:
                logger.warning("%s denied %s -> %s (%s)", policy.value, actor_id, target_id, decision.code)
                raise ForbiddenError(decision.reason, reason=decision.code)

    def can_deliver_message(self, recipient_id: str, sender_id: str) -> AccessDecision:
        return self.check(AccessPolicy.DIRECT_MESSAGE, sender_id, recipient_id)

    def can_access_profile(self, viewer_id: Optional[str], target_id: str) -> AccessDecision:
        viewer = self.record(viewer_id) if viewer_id else None
        return can_access_profile(viewer, self.record(target_id))

    def should_notify(self, recipient_id: str, event_type) -> bool:
        settings_doc = self.settings_repo.get_for_user(recipient_id)
        settings = PrivacySettings.from_doc(settings_doc) if settings_doc else None
        return should_notify(SocialRecord(recipient_id, settings), event_type)

    def is_deactivated(self, user_id: str) -> bool:
        settings_doc = self.settings_repo.get_for_user(user_id)
        return bool(settings_doc) and PrivacySettings.from_doc(settings_doc).is_deactivated
