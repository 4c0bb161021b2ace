from chat_server.dto.chat_dto import (
    ConversationCreateRequest,
    ConversationUpdateRequest,
    MessageSendRequest,
    ReactionRequest,
)

__all__ = ['ConversationCreateRequest', 'ConversationUpdateRequest', 'MessageSendRequest', 'ReactionRequest']
