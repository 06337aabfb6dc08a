"""
VaultAuth Console Module

Terminal interaction used during login.

Components:
- prompt: One-time code entry
- status: Out-of-band waiting indicator
"""

from vaultauth.console.prompt import CodePrompt, console_prompt
from vaultauth.console.status import NullStatus, StatusDisplay, TerminalStatus

__all__ = [
    "CodePrompt",
    "console_prompt",
    "NullStatus",
    "StatusDisplay",
    "TerminalStatus",
]
