from .routes.chat import chat_bp

# Application factory is defined in server.py; the blueprint is re-exported
# here so that tests and alternative runners can build an app without
# importing server.py and triggering side-effects.

__all__ = ["chat_bp"]
