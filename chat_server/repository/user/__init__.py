from chat_server.repository.user.user_repository import UserRepository
from chat_server.repository.user.user_settings_repository import UserSettingsRepository

__all__ = ['UserRepository', 'UserSettingsRepository']
