"""Markdown to Telegram HTML conversion and message splitting."""

from __future__ import annotations

import re

TELEGRAM_MAX_MESSAGE_CHARS = 3800

TABLE_RE = re.compile(r"^(\|.+\|)\n(\|[-:\s|]+\|)\n((?:\|.+\|\n?)+)", re.MULTILINE)


def split_message(text: str, max_chars: int = TELEGRAM_MAX_MESSAGE_CHARS) -> list[str]:
    """Split long text into Telegram-safe chunks, preferring paragraph/newline boundaries."""
    if len(text) <= max_chars:
        return [text]

    chunks: list[str] = []
    remaining = text
    while len(remaining) > max_chars:
        split_at = remaining.rfind("\n\n", 0, max_chars)
        if split_at < 0:
            split_at = remaining.rfind("\n", 0, max_chars)
        if split_at < 0:
            split_at = max_chars
        chunk = remaining[:split_at].strip()
        if not chunk:
            chunk = remaining[:max_chars]
            split_at = max_chars
        chunks.append(chunk)
        remaining = remaining[split_at:].lstrip()
    if remaining:
        chunks.append(remaining)
    return chunks


def truncate(text: str, max_chars: int, marker: str = "…") -> str:
    """Hard-cap text for fields that cannot be split (button labels, rich bodies)."""
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - len(marker))] + marker


def _parse_table_row(row: str) -> list[str]:
    return [cell.strip() for cell in row.split("|") if cell.strip()]


def convert_tables(text: str) -> str:
    """
    Rewrite markdown tables as key/value lines, which read better on a phone.

    | Name | Status |        **Name:** api
    |------|--------|   ->   **Status:** ok
    | api  | ok     |
    """

    def _replace(m: re.Match) -> str:
        headers = _parse_table_row(m.group(1))
        lines: list[str] = []
        for row in m.group(3).strip().split("\n"):
            cells = _parse_table_row(row)
            for i, header in enumerate(headers):
                value = cells[i] if i < len(cells) else ""
                if value:
                    lines.append(f"**{header}:** {value}")
            lines.append("")
        return "\n".join(lines).strip() + "\n"

    return TABLE_RE.sub(_replace, text)


def markdown_to_telegram_html(text: str) -> str:
    """
    Convert markdown to Telegram-safe HTML.
    """
    if not text:
        return ""

    # 1. Extract and protect code blocks (preserve content from other processing)
    code_blocks: list[str] = []

    def save_code_block(m: re.Match) -> str:
        code_blocks.append(m.group(1))
        return f"\x00CB{len(code_blocks) - 1}\x00"

    text = re.sub(r"```[\w]*\n?([\s\S]*?)```", save_code_block, text)

    # 2. Extract and protect inline code
    inline_codes: list[str] = []

    def save_inline_code(m: re.Match) -> str:
        inline_codes.append(m.group(1))
        return f"\x00IC{len(inline_codes) - 1}\x00"

    text = re.sub(r"`([^`]+)`", save_inline_code, text)

    # 3. Tables -> key/value lines
    text = convert_tables(text)

    # 4. Headers # Title -> bold title
    text = re.sub(r"^#{1,6}\s+(.+)$", r"**\1**", text, flags=re.MULTILINE)

    # 5. Blockquotes > text -> just the text (before HTML escaping)
    text = re.sub(r"^>\s*(.*)$", r"\1", text, flags=re.MULTILINE)

    # 6. Escape HTML special characters
    text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")

    # 7. Links [text](url) - must be before bold/italic to handle nested cases
    text = re.sub(r"\[([^\]]+)\]\(([^)]+)\)", r'<a href="\2">\1</a>', text)

    # 8. Bold **text** or __text__
    text = re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", text)
    text = re.sub(r"__(.+?)__", r"<b>\1</b>", text)

    # 9. Italic _text_ or *text* (avoid matching inside words like some_var_name)
    text = re.sub(r"(?<![a-zA-Z0-9])_([^_\n]+)_(?![a-zA-Z0-9])", r"<i>\1</i>", text)
    text = re.sub(r"(?<![\w*])\*([^*\n]+)\*(?![\w*])", r"<i>\1</i>", text)

    # 10. Strikethrough ~~text~~
    text = re.sub(r"~~(.+?)~~", r"<s>\1</s>", text)

    # 11. Bullet lists - item -> • item
    text = re.sub(r"^[-*]\s+", "• ", text, flags=re.MULTILINE)

    # 12. Restore inline code with HTML tags
    for i, code in enumerate(inline_codes):
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        text = text.replace(f"\x00IC{i}\x00", f"<code>{escaped}</code>")

    # 13. Restore code blocks with HTML tags
    for i, code in enumerate(code_blocks):
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        text = text.replace(f"\x00CB{i}\x00", f"<pre><code>{escaped}</code></pre>")

    return text
