"""Request DTOs for the chat API.

Clients send camelCase JSON; snake_case keys are accepted as well.
"""
from typing import Optional, Dict, Any, List

from chat_server.exception.ChatError import BadRequestError


def _as_id_list(value) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise BadRequestError('participantIds must be a list of user ids')
    return [str(v) for v in value if v]


class ConversationCreateRequest:
    def __init__(self, participant_ids: List[str], type: str, name: Optional[str] = None,
                 avatar: Optional[str] = None, description: Optional[str] = None):
        self.participant_ids = participant_ids
        self.type = type
        self.name = name
        self.avatar = avatar
        self.description = description

    @classmethod
    def from_request(cls, payload: Dict[str, Any]):
        payload = payload or {}
        return cls(
            participant_ids=_as_id_list(payload.get('participantIds') or payload.get('participant_ids')),
            type=payload.get('type') or payload.get('conversation_type'),
            name=payload.get('name'),
            avatar=payload.get('avatar'),
            description=payload.get('description'),
        )


class ConversationUpdateRequest:
    def __init__(self, name: Optional[str] = None, description: Optional[str] = None,
                 avatar: Optional[str] = None, participants: Optional[List[str]] = None):
        self.name = name
        self.description = description
        self.avatar = avatar
        self.participants = participants

    @classmethod
    def from_request(cls, payload: Dict[str, Any]):
        payload = payload or {}
        participants = payload.get('participants')
        return cls(
            name=payload.get('name'),
            description=payload.get('description'),
            avatar=payload.get('avatar'),
            participants=_as_id_list(participants) if participants is not None else None,
        )


class MessageSendRequest:
    def __init__(self, content: str, message_type: str = 'text', file_url: Optional[str] = None,
                 file_name: Optional[str] = None, reply_to: Optional[str] = None, post_id: Optional[str] = None,
                 conversation_id: Optional[str] = None):
        self.conversation_id = conversation_id
        self.content = content
        self.message_type = message_type or 'text'
        self.file_url = file_url
        self.file_name = file_name
        self.reply_to = reply_to
        self.post_id = post_id

    @classmethod
    def from_request(cls, payload: Dict[str, Any], conversation_id: Optional[str] = None):
        payload = payload or {}
        return cls(
            conversation_id=conversation_id or payload.get('conversationId') or payload.get('conversation_id'),
            content=payload.get('content'),
            message_type=payload.get('messageType') or payload.get('message_type') or 'text',
            file_url=payload.get('fileUrl') or payload.get('file_url'),
            file_name=payload.get('fileName') or payload.get('file_name'),
            reply_to=payload.get('replyTo') or payload.get('reply_to'),
            post_id=payload.get('postId') or payload.get('post_id'),
        )


class ReactionRequest:
    def __init__(self, emoji_category: str, emoji_name: str):
        self.emoji_category = emoji_category
        self.emoji_name = emoji_name

    def validate(self):
        if not isinstance(self.emoji_category, str) or not self.emoji_category.strip():
            raise BadRequestError('emojiCategory is required')
        if not isinstance(self.emoji_name, str) or not self.emoji_name.strip():
            raise BadRequestError('emojiName is required')
        return self

    @classmethod
    def from_request(cls, payload: Dict[str, Any]):
        payload = payload or {}
        emoji = payload.get('emoji')
        if isinstance(emoji, dict):
            return cls(emoji.get('category'), emoji.get('name'))
        return cls(
            emoji_category=payload.get('emojiCategory') or payload.get('emoji_category'),
            emoji_name=payload.get('emojiName') or payload.get('emoji_name'),
        )
