from chat_server.social.access_gate import AccessGate, AccessPolicy, AccessDecision, SocialRecord
from chat_server.social.models import PrivacySettings, UserProfile, MessagingPolicy, ProfileVisibility, NotificationEvent

__all__ = [
    'AccessGate', 'AccessPolicy', 'AccessDecision', 'SocialRecord',
    'PrivacySettings', 'UserProfile', 'MessagingPolicy', 'ProfileVisibility', 'NotificationEvent',
]
