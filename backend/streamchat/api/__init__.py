"""HTTP routers."""

from streamchat.api.chats import router as chats_router

__all__ = ["chats_router"]
