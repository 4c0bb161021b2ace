"""Messaging data models for direct and group chat.

Collections:
- conversations: direct (exactly two participants) or group conversations
- chat_messages: messages, with nested reactions and read receipts
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from chat_server.exception.ChatError import BadRequestError
from chat_server.utils.time_utils import utc_now, to_iso


class ConversationType(str, Enum):
    DIRECT = "direct"      # 1-1 conversation
    GROUP = "group"        # Named group with admins


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    POST = "post"          # Shared post, referenced by id


class ReactionResult(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UPDATED = "updated"


# ==========================================================================
# Message content variants
# ==========================================================================

class MessageContent:
    """Text body plus the payload fields that belong to one message type."""
    message_type = MessageType.TEXT

    def __init__(self, text: str):
        self.text = text

    def validate(self):
        pass

    def payload(self) -> Dict[str, Any]:
        return {}

    def forwarded_copy(self) -> 'MessageContent':
        return self.__class__(self.text)

    def to_db_fields(self) -> Dict[str, Any]:
        fields = {'content': self.text, 'message_type': self.message_type.value}
        fields.update(self.payload())
        return fields

    def to_dict_fields(self) -> Dict[str, Any]:
        out = {'content': self.text, 'messageType': self.message_type.value}
        for key, value in self.payload().items():
            head, *rest = key.split('_')
            out[head + ''.join(part.title() for part in rest)] = value
        return out

    @staticmethod
    def build(message_type, text, file_url=None, file_name=None, post_id=None) -> 'MessageContent':
        try:
            message_type = MessageType(message_type or MessageType.TEXT.value)
        except ValueError:
            raise BadRequestError(f"Unsupported message type: {message_type}")
        if message_type == MessageType.TEXT:
            return TextContent(text)
        if message_type == MessageType.IMAGE:
            return ImageContent(text, file_url, file_name)
        if message_type == MessageType.FILE:
            return FileContent(text, file_url, file_name)
        return PostContent(text, post_id)

    @staticmethod
    def from_doc(doc: Dict[str, Any]) -> 'MessageContent':
        return MessageContent.build(
            doc.get('message_type'),
            doc.get('content'),
            file_url=doc.get('file_url'),
            file_name=doc.get('file_name'),
            post_id=doc.get('post_id'),
        )


class TextContent(MessageContent):
    message_type = MessageType.TEXT


class _AttachmentContent(MessageContent):
    def __init__(self, text: str, file_url: Optional[str] = None, file_name: Optional[str] = None):
        super().__init__(text)
        self.file_url = file_url
        self.file_name = file_name

    def validate(self):
        if not self.file_url:
            raise BadRequestError(f"fileUrl is required for {self.message_type.value} messages")

    def payload(self) -> Dict[str, Any]:
        return {'file_url': self.file_url, 'file_name': self.file_name}

    def forwarded_copy(self) -> 'MessageContent':
        return self.__class__(self.text, self.file_url, self.file_name)


class ImageContent(_AttachmentContent):
    message_type = MessageType.IMAGE


class FileContent(_AttachmentContent):
    message_type = MessageType.FILE


class PostContent(MessageContent):
    message_type = MessageType.POST

    def __init__(self, text: str, post_id: Optional[str] = None):
        super().__init__(text)
        self.post_id = post_id

    def validate(self):
        if not self.post_id:
            raise BadRequestError("postId is required for post messages")

    def payload(self) -> Dict[str, Any]:
        return {'post_id': self.post_id}

    def forwarded_copy(self) -> 'MessageContent':
        # Forwarding copies the body and type only; the post reference stays with the original.
        return PostContent(self.text)


# ==========================================================================
# Reactions and receipts
# ==========================================================================

class Reaction:
    def __init__(self, user_id: str, emoji_category: str, emoji_name: str, created_at: Optional[datetime] = None):
        self.user_id = user_id
        self.emoji_category = emoji_category
        self.emoji_name = emoji_name
        self.created_at = created_at or utc_now()

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'emoji_category': self.emoji_category,
            'emoji_name': self.emoji_name,
            'created_at': self.created_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'emojiCategory': self.emoji_category,
            'emojiName': self.emoji_name,
            'createdAt': to_iso(self.created_at),
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Reaction':
        return cls(doc.get('user_id'), doc.get('emoji_category'), doc.get('emoji_name'), doc.get('created_at'))


def reactions_by_user(reaction_docs: List[Dict[str, Any]]) -> Dict[str, Reaction]:
    """Index reactions by user, keeping the first entry when a user appears twice."""
    indexed = {}
    for doc in reaction_docs or []:
        user_id = doc.get('user_id')
        if user_id not in indexed:
            indexed[user_id] = Reaction.from_doc(doc)
    return indexed


class ReadReceipt:
    def __init__(self, user_id: str, read_at: Optional[datetime] = None):
        self.user_id = user_id
        self.read_at = read_at or utc_now()

    def to_dict(self) -> Dict[str, Any]:
        return {'userId': self.user_id, 'readAt': to_iso(self.read_at)}


# ==========================================================================
# Aggregates
# ==========================================================================

class Message:
    """Message document structure."""

    def __init__(
        self,
        message_id: str,
        conversation_id: str,
        sender_id: str,
        content: MessageContent,
        reply_to: Optional[str] = None,
        reactions: Optional[Dict[str, Reaction]] = None,
        read_by: Optional[Dict[str, ReadReceipt]] = None,
        edited: bool = False,
        edited_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.message_id = message_id
        self.conversation_id = conversation_id
        self.sender_id = sender_id
        self.content = content
        self.reply_to = reply_to
        # Keyed by user id; exposed as ordered lists
        self.reactions = reactions or {}
        self.read_by = read_by or {}
        self.edited = edited
        self.edited_at = edited_at
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or self.created_at

    @property
    def message_type(self) -> MessageType:
        return self.content.message_type

    def to_dict(self) -> Dict[str, Any]:
        out = {
            'id': self.message_id,
            'conversationId': self.conversation_id,
            'senderId': self.sender_id,
            'replyTo': self.reply_to,
            'reactions': [r.to_dict() for r in self.reactions.values()],
            'readBy': [r.to_dict() for r in self.read_by.values()],
            'edited': self.edited,
            'editedAt': to_iso(self.edited_at),
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
        }
        out.update(self.content.to_dict_fields())
        return out

    def to_db_doc(self) -> Dict[str, Any]:
        doc = {
            '_id': self.message_id,
            'message_id': self.message_id,
            'conversation_id': self.conversation_id,
            'sender_id': self.sender_id,
            'reply_to': self.reply_to,
            'reactions': [r.to_db_doc() for r in self.reactions.values()],
            'read_by': [{'user_id': r.user_id, 'read_at': r.read_at} for r in self.read_by.values()],
            'edited': self.edited,
            'edited_at': self.edited_at,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        doc.update(self.content.to_db_fields())
        return doc

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        read_by = {}
        for entry in doc.get('read_by') or []:
            read_by.setdefault(entry.get('user_id'), ReadReceipt(entry.get('user_id'), entry.get('read_at')))
        return cls(
            message_id=doc.get('message_id') or str(doc.get('_id')),
            conversation_id=doc.get('conversation_id'),
            sender_id=doc.get('sender_id'),
            content=MessageContent.from_doc(doc),
            reply_to=doc.get('reply_to'),
            reactions=reactions_by_user(doc.get('reactions')),
            read_by=read_by,
            edited=doc.get('edited', False),
            edited_at=doc.get('edited_at'),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
        )


class Conversation:
    """Conversation document structure."""

    def __init__(
        self,
        conversation_id: str,
        conversation_type: ConversationType,
        participants: List[str],
        created_by: str,
        admins: Optional[List[str]] = None,
        name: Optional[str] = None,
        description: Optional[str] = None,
        avatar: Optional[str] = None,
        last_message: Optional[str] = None,
        pinned_messages: Optional[List[str]] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.conversation_id = conversation_id
        self.conversation_type = ConversationType(conversation_type)
        self.participants = list(dict.fromkeys(participants))
        self.created_by = created_by
        self.admins = list(dict.fromkeys(admins or []))
        self.name = name
        self.description = description
        self.avatar = avatar
        self.last_message = last_message
        self.pinned_messages = pinned_messages or []
        self.created_at = created_at or utc_now()
        self.updated_at = updated_at or self.created_at

    @property
    def is_direct(self) -> bool:
        return self.conversation_type == ConversationType.DIRECT

    @property
    def is_group(self) -> bool:
        return self.conversation_type == ConversationType.GROUP

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admins

    def other_participant(self, user_id: str) -> Optional[str]:
        """The counterpart in a direct conversation."""
        others = [p for p in self.participants if p != user_id]
        return others[0] if others else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.conversation_id,
            'type': self.conversation_type.value,
            'participants': self.participants,
            'admins': self.admins,
            'name': self.name,
            'description': self.description,
            'avatar': self.avatar,
            'lastMessage': self.last_message,
            'pinnedMessages': self.pinned_messages,
            'createdBy': self.created_by,
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
        }

    def to_db_doc(self) -> Dict[str, Any]:
        doc = {
            '_id': self.conversation_id,
            'conversation_id': self.conversation_id,
            'conversation_type': self.conversation_type.value,
            'participants': self.participants,
            'admins': self.admins,
            'name': self.name,
            'description': self.description,
            'avatar': self.avatar,
            'last_message': self.last_message,
            'pinned_messages': self.pinned_messages,
            'created_by': self.created_by,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if self.is_direct:
            doc['direct_key'] = ':'.join(sorted(self.participants))
        return doc

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Conversation':
        return cls(
            conversation_id=doc.get('conversation_id') or str(doc.get('_id')),
            conversation_type=doc.get('conversation_type', ConversationType.DIRECT.value),
            participants=doc.get('participants', []),
            created_by=doc.get('created_by'),
            admins=doc.get('admins', []),
            name=doc.get('name'),
            description=doc.get('description'),
            avatar=doc.get('avatar'),
            last_message=doc.get('last_message'),
            pinned_messages=doc.get('pinned_messages', []),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
        )
