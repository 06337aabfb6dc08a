"""
VaultAuth Console Prompt

Interactive entry of one-time codes.
"""

from __future__ import annotations

import getpass
import sys
from typing import Callable, Optional, TextIO

# (prompt, error, description) -> code, or None when the user aborts
CodePrompt = Callable[[str, Optional[str], str], Optional[str]]


def console_prompt(
    prompt: str,
    error: Optional[str],
    description: str,
    stream: Optional[TextIO] = None,
) -> Optional[str]:
    """
    Ask for a code on the controlling terminal without echoing it.

    Args:
        prompt: Short label, e.g. "Code"
        error: Error from the previous attempt, shown above the prompt
        description: What to enter, e.g. "Please enter your YubiKey OTP for <jdoe>."
        stream: Where to write the description (default stderr)

    Returns:
        The entered code, or None on EOF or Ctrl+C
    """
    out = stream or sys.stderr
    if error:
        out.write(f"{error}\n")
    out.write(f"{description}\n")
    out.flush()

    try:
        return getpass.getpass(f"{prompt}: ", stream=out)
    except (EOFError, KeyboardInterrupt):
        out.write("\n")
        return None
