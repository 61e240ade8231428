"""Summarize agent text chunks for phone-sized delivery."""

import re

ERROR_PATTERNS = [
    re.compile(r"error:", re.IGNORECASE),
    re.compile(r"traceback", re.IGNORECASE),
    re.compile(r"exception", re.IGNORECASE),
    re.compile(r"FAILED"),
    re.compile(r"panic:"),
    re.compile(r"fatal:", re.IGNORECASE),
]
FILE_CHANGE_RE = re.compile(r"^(Created|Modified|Deleted|Wrote):", re.IGNORECASE)
CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
CODE_BLOCK_MAX_LINES = 12
CODE_BLOCK_PREVIEW_LINES = 5


class ContentProcessor:
    """
    Shortens long agent output before it reaches the chat.

    The untruncated text stays available through /full, so every truncation
    marker points there.
    """

    def __init__(self, summarize_threshold: int = 1500):
        self.summarize_threshold = summarize_threshold

    def summarize(self, text: str | None) -> str | None:
        """Return text ready for delivery, or None when nothing is left."""
        if not text or not text.strip():
            return None
        text = text.strip()

        if self.is_error(text):
            return f"[ERROR] {text}"

        if len(text) <= self.summarize_threshold:
            return text

        text = self.compress_file_changes(text)
        text = self.truncate_code_blocks(text)
        if len(text) > self.summarize_threshold:
            text = self.truncate_reasoning(text)
        return text

    @staticmethod
    def is_error(text: str) -> bool:
        return any(p.search(text) for p in ERROR_PATTERNS)

    @staticmethod
    def compress_file_changes(text: str) -> str:
        """Drop unified diff bodies and mark file change lines."""
        compressed: list[str] = []
        in_diff = False
        for line in text.split("\n"):
            if line.startswith(("---", "+++", "@@")):
                in_diff = True
                continue
            if in_diff and (line.startswith(("+", "-")) or line == ""):
                continue
            in_diff = False

            if FILE_CHANGE_RE.match(line):
                compressed.append(f"> {line.strip()}")
            else:
                compressed.append(line)
        return "\n".join(compressed)

    @staticmethod
    def truncate_code_blocks(text: str) -> str:
        def _shorten(m: re.Match) -> str:
            block = m.group(0)
            lines = block.split("\n")
            if len(lines) <= CODE_BLOCK_MAX_LINES:
                return block
            header = lines[0]
            preview = "\n".join(lines[1:CODE_BLOCK_PREVIEW_LINES + 1])
            remaining = len(lines) - (CODE_BLOCK_PREVIEW_LINES + 1)
            return f"{header}\n{preview}\n[... {remaining} more lines — reply /full to see]\n```"

        return CODE_BLOCK_RE.sub(_shorten, text)

    def truncate_reasoning(self, text: str) -> str:
        """Keep the first and last paragraph of long prose."""
        paragraphs = re.split(r"\n\n+", text)
        if len(paragraphs) <= 2:
            return text[: self.summarize_threshold] + "\n[... truncated — reply /full to see]"

        skipped = len(paragraphs) - 2
        return (
            f"{paragraphs[0]}\n\n"
            f"[... {skipped} sections truncated — reply /full to see]\n\n"
            f"{paragraphs[-1]}"
        )
