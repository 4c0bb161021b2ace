"""Chat REST API routes.

Every mutation goes through the messaging service; real-time events and
notifications are queued by the service, not by these handlers.

Endpoints:
- GET    /api/chat/conversations                          list conversations
- POST   /api/chat/conversations                          create (or reuse direct)
- GET    /api/chat/conversations/{id}                     conversation details
- PUT    /api/chat/conversations/{id}                     rename / add participants
- DELETE /api/chat/conversations/{id}                     delete direct / leave group
- GET    /api/chat/conversations/{id}/messages            history (page, limit)
- POST   /api/chat/conversations/{id}/messages            send
- POST   /api/chat/conversations/{id}/read                mark all read
- POST   /api/chat/conversations/{id}/share               share a post
- POST   /api/chat/conversations/{id}/pin/{message_id}    pin
- DELETE /api/chat/conversations/{id}/pin/{message_id}    unpin
- PUT    /api/chat/messages/{id}                          edit
- DELETE /api/chat/messages/{id}                          delete
- GET    /api/chat/messages/{id}/info                     message with read receipts
- POST   /api/chat/messages/{id}/forward                  forward
- POST   /api/chat/messages/{id}/reactions                toggle reaction
- DELETE /api/chat/messages/{id}/reactions                remove own reaction
- POST   /api/chat/messages/{id}/star                     star
- DELETE /api/chat/messages/{id}/star                     unstar
- GET    /api/chat/starred                                starred message ids
- GET    /api/chat/users/{id}                             profile card (privacy-gated)
"""
import logging

from flask import Blueprint, request

from chat_server.dto.chat_dto import (
    ConversationCreateRequest, ConversationUpdateRequest, MessageSendRequest, ReactionRequest,
)
from chat_server.exception.ChatError import BadRequestError, ForbiddenError, NotFoundError
from chat_server.messaging.service import get_messaging_service
from chat_server.social.models import UserProfile
from chat_server.utils.decorators import handle_errors, require_auth, optional_auth
from chat_server.utils.helpers import respond_success, respond_error, parse_pagination

logger = logging.getLogger(__name__)

# Blueprint
chat_bp = Blueprint('chat', __name__, url_prefix='/api/chat')


def _json_body():
    return request.get_json(silent=True) or {}


# =============================================================================
# Conversation Endpoints
# =============================================================================

@chat_bp.route('/conversations', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(actor_id):
    conversations = get_messaging_service().conversations.list_for_user(actor_id)
    return respond_success({
        'conversations': [c.to_dict() for c in conversations],
        'count': len(conversations),
    })


@chat_bp.route('/conversations', methods=['POST'])
@handle_errors
@require_auth
def create_conversation(actor_id):
    """Create a conversation.

    Body:
        {"participantIds": [...], "type": "direct" | "group", "name": "...", "avatar": "..."}

    A direct conversation that already exists for the pair is returned with 200
    instead of 201.
    """
    dto = ConversationCreateRequest.from_request(_json_body())
    conversation, created = get_messaging_service().conversations.create(actor_id, dto)
    return respond_success({'conversation': conversation.to_dict(), 'created': created},
                           status=201 if created else 200)


@chat_bp.route('/conversations/<conversation_id>', methods=['GET'])
@handle_errors
@require_auth
def get_conversation(conversation_id, actor_id):
    conversation = get_messaging_service().conversations.get(conversation_id, actor_id)
    return respond_success({'conversation': conversation.to_dict()})


@chat_bp.route('/conversations/<conversation_id>', methods=['PUT'])
@handle_errors
@require_auth
def update_conversation(conversation_id, actor_id):
    dto = ConversationUpdateRequest.from_request(_json_body())
    conversation = get_messaging_service().conversations.update(conversation_id, actor_id, dto)
    return respond_success({'conversation': conversation.to_dict()})


@chat_bp.route('/conversations/<conversation_id>', methods=['DELETE'])
@handle_errors
@require_auth
def delete_conversation(conversation_id, actor_id):
    result = get_messaging_service().conversations.delete(conversation_id, actor_id)
    return respond_success(result)


# =============================================================================
# Message Endpoints (conversation scoped)
# =============================================================================

@chat_bp.route('/conversations/<conversation_id>/messages', methods=['GET'])
@handle_errors
@require_auth
def get_messages(conversation_id, actor_id):
    """Message history. Query params: page (default 1), limit (default 50)."""
    from config import config
    page, limit, errors = parse_pagination(request.args, default_limit=config.MESSAGES_PAGE_SIZE)
    if errors:
        return respond_error(errors, status=400, kind=BadRequestError.kind)
    messages = get_messaging_service().messages.get_messages(conversation_id, actor_id, page=page, limit=limit)
    return respond_success({
        'messages': [m.to_dict() for m in messages],
        'count': len(messages),
        'meta': {'page': page, 'limit': limit},
    })


@chat_bp.route('/conversations/<conversation_id>/messages', methods=['POST'])
@handle_errors
@require_auth
def send_message(conversation_id, actor_id):
    dto = MessageSendRequest.from_request(_json_body(), conversation_id=conversation_id)
    message = get_messaging_service().messages.send(conversation_id, actor_id, dto)
    return respond_success({'message': message.to_dict()}, status=201)


@chat_bp.route('/conversations/<conversation_id>/read', methods=['POST'])
@handle_errors
@require_auth
def mark_read(conversation_id, actor_id):
    marked = get_messaging_service().messages.mark_read(conversation_id, actor_id)
    return respond_success({'conversationId': conversation_id, 'marked': marked})


@chat_bp.route('/conversations/<conversation_id>/share', methods=['POST'])
@handle_errors
@require_auth
def share_post(conversation_id, actor_id):
    body = _json_body()
    message = get_messaging_service().messages.share_post(
        conversation_id, actor_id, body.get('postId') or body.get('post_id'), body.get('content'))
    return respond_success({'message': message.to_dict()}, status=201)


@chat_bp.route('/conversations/<conversation_id>/pin/<message_id>', methods=['POST'])
@handle_errors
@require_auth
def pin_message(conversation_id, message_id, actor_id):
    conversation = get_messaging_service().messages.pin(conversation_id, message_id, actor_id)
    return respond_success({'conversation': conversation.to_dict()})


@chat_bp.route('/conversations/<conversation_id>/pin/<message_id>', methods=['DELETE'])
@handle_errors
@require_auth
def unpin_message(conversation_id, message_id, actor_id):
    conversation = get_messaging_service().messages.unpin(conversation_id, message_id, actor_id)
    return respond_success({'conversation': conversation.to_dict()})


# =============================================================================
# Message Endpoints
# =============================================================================

@chat_bp.route('/messages/<message_id>', methods=['PUT'])
@handle_errors
@require_auth
def edit_message(message_id, actor_id):
    message = get_messaging_service().messages.edit(message_id, actor_id, _json_body().get('content'))
    return respond_success({'message': message.to_dict()})


@chat_bp.route('/messages/<message_id>', methods=['DELETE'])
@handle_errors
@require_auth
def delete_message(message_id, actor_id):
    result = get_messaging_service().messages.delete(message_id, actor_id)
    return respond_success(result)


@chat_bp.route('/messages/<message_id>/info', methods=['GET'])
@handle_errors
@require_auth
def message_info(message_id, actor_id):
    message = get_messaging_service().messages.message_info(message_id, actor_id)
    return respond_success({'message': message.to_dict(), 'readBy': message.to_dict()['readBy']})


@chat_bp.route('/messages/<message_id>/forward', methods=['POST'])
@handle_errors
@require_auth
def forward_message(message_id, actor_id):
    body = _json_body()
    target_id = body.get('targetConversationId') or body.get('conversationId')
    if not target_id:
        raise BadRequestError('targetConversationId is required')
    message = get_messaging_service().messages.forward(message_id, target_id, actor_id)
    return respond_success({'message': message.to_dict()}, status=201)


@chat_bp.route('/messages/<message_id>/reactions', methods=['POST'])
@handle_errors
@require_auth
def toggle_reaction(message_id, actor_id):
    dto = ReactionRequest.from_request(_json_body())
    result, message = get_messaging_service().messages.toggle_reaction(message_id, actor_id, dto)
    return respond_success({'result': result.value, 'message': message.to_dict()})


@chat_bp.route('/messages/<message_id>/reactions', methods=['DELETE'])
@handle_errors
@require_auth
def remove_reaction(message_id, actor_id):
    message = get_messaging_service().messages.remove_reaction(message_id, actor_id)
    return respond_success({'message': message.to_dict()})


@chat_bp.route('/messages/<message_id>/star', methods=['POST'])
@handle_errors
@require_auth
def star_message(message_id, actor_id):
    starred = get_messaging_service().messages.star(message_id, actor_id)
    return respond_success({'starredMessages': starred})


@chat_bp.route('/messages/<message_id>/star', methods=['DELETE'])
@handle_errors
@require_auth
def unstar_message(message_id, actor_id):
    starred = get_messaging_service().messages.unstar(message_id, actor_id)
    return respond_success({'starredMessages': starred})


@chat_bp.route('/starred', methods=['GET'])
@handle_errors
@require_auth
def list_starred(actor_id):
    return respond_success({'starredMessages': get_messaging_service().messages.list_starred(actor_id)})


# =============================================================================
# Profile card
# =============================================================================

@chat_bp.route('/users/<user_id>', methods=['GET'])
@handle_errors
@optional_auth
def get_user_profile(user_id, actor_id):
    """Profile card shown in chat headers; anonymous callers are refused when the user has settings."""
    service = get_messaging_service()
    profile = service.repos.user.get_profile(user_id)
    if not profile:
        raise NotFoundError('User not found')
    decision = service.access_gate.can_access_profile(actor_id, user_id)
    if not decision:
        raise ForbiddenError(decision.reason, reason=decision.code)
    return respond_success({'user': UserProfile.from_doc(profile).to_dict()})
