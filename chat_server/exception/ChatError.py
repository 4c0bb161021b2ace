"""Error taxonomy for conversation and message operations.

Every operation in the messaging core raises one of these at its boundary;
``handle_errors`` turns them into ``{success, error, kind}`` responses.
"""


class ChatError(Exception):
    """Base class for messaging failures. ``kind`` is the machine-readable category."""
    kind = 'internal'
    status = 500

    def __init__(self, message, reason=None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self):
        out = {'kind': self.kind, 'error': self.message}
        if self.reason:
            out['reason'] = self.reason
        return out


class NotFoundError(ChatError):
    """Conversation, message or target user does not exist."""
    kind = 'not_found'
    status = 404


class ForbiddenError(ChatError):
    """Not a participant, not an admin, blocked, privacy-denied or deactivated."""
    kind = 'forbidden'
    status = 403


class BadRequestError(ChatError):
    """Malformed conversation parameters, invalid replyTo or reaction payload."""
    kind = 'bad_request'
    status = 400


class InternalError(ChatError):
    """Storage or downstream failure."""
    kind = 'internal'
    status = 500
