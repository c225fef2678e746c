from supportdesk.models.agent import Agent
from supportdesk.models.bot_personality import BotPersonality
from supportdesk.models.channel_config import ChannelConfig
from supportdesk.models.chat_session import ChatSession
from supportdesk.models.customer import Customer
from supportdesk.models.message import Message

__all__ = [
    "Agent",
    "BotPersonality",
    "ChannelConfig",
    "ChatSession",
    "Customer",
    "Message",
]
