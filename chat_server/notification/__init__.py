from chat_server.notification.dispatcher import NotificationDispatcher
from chat_server.notification.worker import (
    OutboundWorker, get_outbound_worker, reset_outbound_worker, start_outbound_worker,
)

__all__ = [
    'NotificationDispatcher', 'OutboundWorker', 'get_outbound_worker', 'reset_outbound_worker', 'start_outbound_worker',
]
