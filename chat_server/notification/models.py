from typing import Optional, Dict, Any
from datetime import datetime

from bson import ObjectId

from chat_server.utils.time_utils import utc_now, to_iso


class Notification:
    """Notification document structure (append-only)."""

    def __init__(
        self,
        recipient_id: str,
        sender_id: str,
        notification_type: str,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action_url: Optional[str] = None,
        notification_id: Optional[str] = None,
        is_read: bool = False,
        created_at: Optional[datetime] = None,
    ):
        self.notification_id = notification_id or str(ObjectId())
        self.recipient_id = recipient_id
        self.sender_id = sender_id
        self.notification_type = notification_type
        self.message = message
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action_url = action_url
        self.is_read = is_read
        self.created_at = created_at or utc_now()

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            '_id': self.notification_id,
            'notification_id': self.notification_id,
            'recipient_id': self.recipient_id,
            'sender_id': self.sender_id,
            'type': self.notification_type,
            'message': self.message,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'action_url': self.action_url,
            'is_read': self.is_read,
            'created_at': self.created_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.notification_id,
            'recipientId': self.recipient_id,
            'senderId': self.sender_id,
            'type': self.notification_type,
            'message': self.message,
            'entityType': self.entity_type,
            'entityId': self.entity_id,
            'actionUrl': self.action_url,
            'isRead': self.is_read,
            'createdAt': to_iso(self.created_at),
        }
