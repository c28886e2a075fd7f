import logging

from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.text import Text

from .errors import ArgumentError
from .paths import truncate
from .permissions import Decision, blocked_result

logger = logging.getLogger(__name__)

CANCELLED = "Cancelled"
PANEL_LIMIT = 1000


def ask_confirmation(description):
  return Confirm.ask(f"[yellow]{description}?[/yellow]", default=False)


def label(name, result):
  return f"[{name}] {result}"


class ToolExecutor:
  """Runs directives one at a time through the permission gate.

  Every directive yields exactly one result string; handler failures are
  reported inline instead of stopping the batch.
  """

  def __init__(self, ctx, registry, confirm=ask_confirmation, show_output=True):
    self.ctx = ctx
    self.registry = registry
    self.confirm = confirm
    self.show_output = show_output

  @property
  def gate(self):
    return self.ctx.gate

  def run(self, name, argument):
    op = self.registry.get(name)
    if op is None:
      return f"Unknown tool: {name}"
    description = f"{op.name}: {truncate(argument, 80)}" if argument else op.name
    decision = self.gate.authorize(op.mutating, description)
    if decision is Decision.DENY:
      logger.info("blocked %s", description)
      return blocked_result(op.name, truncate(argument, 80))
    try:
      args = op.parse_argument(argument)
    except ArgumentError as e:
      return f"Error: {e}"
    if op.preview is not None:
      op.preview(self.ctx, args)
    if decision is Decision.PROMPT and not self.confirm(description):
      logger.info("declined %s", description)
      return CANCELLED

    logger.info("executing %s", description)
    try:
      with self.ctx.console.status(f"[green]{op.name}[/green] {escape(truncate(argument, 60))}", spinner="dots"):
        return op.handler(self.ctx, args)
    except Exception as e:
      logger.exception("tool %s failed", op.name)
      return f"Error: {op.name} failed: {type(e).__name__}: {e}"

  def execute(self, directives):
    results = []
    for directive in directives:
      result = self.run(directive.name, directive.argument)
      results.append(label(directive.name, result))
      if self.show_output:
        self.ctx.console.print(Panel(
          Text(truncate(result, PANEL_LIMIT)),
          title=f"[cyan]{escape(directive.name)}[/cyan]",
          border_style="red" if result.startswith(("Error", "[blocked]", "Unknown tool")) else "cyan",
        ))
    return results
