"""Outbound text shaping: summarization and chat formatting."""

from codebridge.output.formatter import markdown_to_telegram_html, split_message
from codebridge.output.processor import ContentProcessor

__all__ = ["ContentProcessor", "markdown_to_telegram_html", "split_message"]
