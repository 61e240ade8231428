"""Chat channels module."""

from codebridge.channels.base import BaseChannel
from codebridge.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
