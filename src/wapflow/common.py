"""Common utility functions for the project."""

import html
import json
import re
from enum import Enum
from typing import (
    Any,
    List,
)

from wapflow.core.schema import UserAction


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


_ACTION_ATTR = re.compile(r'data-wap-action="([^"]*)"')


def extract_actions(fragment: str) -> List[UserAction]:
    """
    Collect the actions bound in a rendered fragment, in document order.

    Args:
        fragment: Output of a render template

    Returns:
        One UserAction per ``data-wap-action`` attribute
    """
    actions: List[UserAction] = []
    for raw in _ACTION_ATTR.findall(fragment):
        actions.append(UserAction.model_validate(json.loads(html.unescape(raw))))
    return actions
