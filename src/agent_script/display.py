# display.py
# All terminal output for the agent engine.
#
# This module owns presentation entirely. The agent, planner and memory never
# format strings for the terminal; they call AgentLogger methods. Logging is
# best-effort: a rendering failure is recorded at debug level and swallowed so
# it can never fail a run.
#
# Colour language:
#   cyan: task and step headers
#   blue: model output
#   magenta: scripts and tool call results
#   yellow: planning
#   red: errors

import functools
import json
import logging
from enum import IntEnum
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.text import Text

from agent_script.models import ChatMessage

logger = logging.getLogger(__name__)


class LogLevel(IntEnum):
    OFF = -1
    ERROR = 0
    INFO = 1
    DEBUG = 2


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _best_effort(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            method(self, *args, **kwargs)
        except Exception:
            logger.debug("AgentLogger.%s failed", method.__name__, exc_info=True)

    return wrapper


class AgentLogger:
    """Rich-backed sink for rules, markdown, code, raw messages and tasks."""

    def __init__(self, level: LogLevel = LogLevel.INFO, console: Console | None = None) -> None:
        self.level = level
        self.console = console or Console(highlight=False)

    def _enabled(self, level: LogLevel) -> bool:
        return level <= self.level

    @_best_effort
    def log(self, *args: Any, level: LogLevel = LogLevel.INFO) -> None:
        if self._enabled(level):
            self.console.print(*args)

    @_best_effort
    def log_markdown(self, content: str, title: str | None = None, level: LogLevel = LogLevel.INFO) -> None:
        if not self._enabled(level):
            return
        if title:
            self.console.print(Rule(f"[bold blue]{title}[/bold blue]", style="blue", align="left"))
        self.console.print(Markdown(content))

    @_best_effort
    def log_code(self, title: str, content: str, level: LogLevel = LogLevel.INFO) -> None:
        if not self._enabled(level):
            return
        self.console.print(
            Panel(
                Syntax(content, "python", theme="monokai", word_wrap=True),
                title=_label(title, "magenta"),
                border_style="magenta",
                padding=(0, 1),
            )
        )

    @_best_effort
    def log_rule(self, title: str, level: LogLevel = LogLevel.INFO) -> None:
        if not self._enabled(level):
            return
        self.console.print()
        self.console.print(Rule(f"[bold cyan]{title}[/bold cyan]", style="cyan"))

    @_best_effort
    def log_task(self, content: str, subtitle: str = "", title: str = "", level: LogLevel = LogLevel.INFO) -> None:
        if not self._enabled(level):
            return
        self.console.print()
        self.console.print(
            Panel(
                f"[bold white]{content}[/bold white]",
                title=_label(f"NEW RUN {title}".strip(), "cyan"),
                subtitle=f"[dim]{subtitle}[/dim]" if subtitle else None,
                border_style="cyan",
                padding=(1, 2),
            )
        )

    @_best_effort
    def log_messages(self, messages: list[ChatMessage] | None, level: LogLevel = LogLevel.DEBUG) -> None:
        if not messages or not self._enabled(level):
            return
        payload = [m.model_dump(exclude_none=True) for m in messages]
        self.console.print(Syntax(json.dumps(payload, indent=2, ensure_ascii=False), "json", word_wrap=True))

    @_best_effort
    def log_error(self, message: str, level: LogLevel = LogLevel.ERROR) -> None:
        if not self._enabled(level):
            return
        self.console.print(
            Panel(
                f"[bold red]{message}[/bold red]",
                title=_label("ERROR", "red"),
                border_style="red",
                padding=(0, 2),
            )
        )

    @_best_effort
    def log_plan(self, title: str, content: str, level: LogLevel = LogLevel.INFO) -> None:
        if not self._enabled(level):
            return
        self.console.print()
        self.console.print(Rule(f"[bold yellow]{title}[/bold yellow]", style="yellow"))
        self.console.print(Markdown(content))
