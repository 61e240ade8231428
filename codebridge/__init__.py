"""
codebridge - chat bridge to per-project coding agent sessions
"""

__version__ = "0.1.0"
__logo__ = "🌉"
