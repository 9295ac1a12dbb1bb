"""
Help screens for commands and actions (rich renderables).

Sections
- usage line (program, command path, action, options, positionals)
- description
- subcommands / actions tables
- options and arguments, with type, default and environment variable

Hidden commands, actions and parameters are omitted. Styling follows the
palette below and can be overridden with a __styles__ mapping in __main__.
"""
from collections import defaultdict

from rich.box import ROUNDED
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .arguments import Option
from .utils import Unset


def _styles():
    return defaultdict(str, {
        "usage-label": "bold #00E6FF",
        "program-name": "bold #FF4D94",
        "description-section": "italic #A3A3A3",
        "group-label": "bold #FFFFFF",
        "option-name": "bold #00E6FF",
        "flag-name": "bold #22C55E",
        "metavar": "bold #FFD600",
        "greedy-metavar": "bold italic #FFD600",
        "argument-description": "#9CA3AF",
        "children-title": "bold #FFFFFF",
        "children-table": "#4B5563",
        "children": "bold #36C5F0",
        "children-description": "#9CA3AF",
        "panel-title": "bold #FF4D94",
    } | getattr(__import__("__main__"), "__styles__", {}))


def render(path, action=None, /, *, prog=Unset, colorful=True, fancy=False):
    """
    Build the help screen for the command at the end of `path` (and `action`).

    Parameters
    - path: Sequence[Command] from the root
    - action: Action | None. None describes the command itself: its primary
      action's parameters (if any), its subcommands and its actions.
    - prog: str | Unset, program name (defaults to __prog__ in __main__, then the root name)
    """
    styles = _styles()
    path = tuple(path)
    command = path[-1]
    if action is None:
        action = command.primary

    def styler(style):
        return styles[style] if colorful else ""

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if isinstance(fragment, Text):
            return fragment.copy() if colorful else Text(fragment.plain)
        return Text(str(fragment), styler(style))

    if prog is Unset:
        prog = getattr(__import__("__main__"), "__prog__", path[0].name)

    parameters = [parameter for parameter in (action.parameters if action else ()) if not parameter.hidden]
    options = [parameter for parameter in parameters if isinstance(parameter, Option)]
    arguments = [parameter for parameter in parameters if not isinstance(parameter, Option)]

    def metavar(parameter):
        style = "greedy-metavar" if parameter.collection else "metavar"
        label = "<%s>" % parameter.name
        if parameter.collection:
            label += "..."
        return text(label, style)

    usage = Text()
    usage.append("usage", styler("usage-label")).append(": ")
    usage.append(text(" ".join([prog, *(node.name for node in path[1:])]), "program-name"))
    if action is not None and not action.primary:
        usage.append(" ").append(text(action.name, "program-name"))
    elif command.children or [node for node in command.actions if not node.primary]:
        usage.append(" ").append(text("<command>", "metavar"))
    if options:
        usage.append(" [options]")
    for argument in arguments:
        usage.append(" ")
        usage.append(metavar(argument) if argument.required else Text.assemble("[", metavar(argument), "]"))

    renders = [usage.append("\n")]

    if descr := (action.descr if action is not None and not action.primary else None) or command.descr:
        renders.append(text(descr, "description-section").append("\n"))

    def table(title, nodes):
        table = Table(
            "name", "help",
            title=text(title, "children-title"),
            box=ROUNDED,
            style=styler("children-table"),
            header_style=styler("children-title"),
        )
        for node in nodes:
            names = ", ".join(node.names)
            table.add_row(text(names, "children"), text(node.descr or "", "children-description"))
        return table

    if children := [child for child in command.children if not child.hidden]:
        renders.append(table("subcommands" if len(path) > 1 else "commands", children))

    if action is None or action.primary:
        if actions := [node for node in command.actions if not node.hidden and not node.primary]:
            renders.append(table("actions", actions))

    def describe(parameter):
        parts = []
        if parameter.descr:
            parts.append(str(parameter.descr))
        if not parameter.boolean:
            parts.append("type: %s" % parameter.descriptor.label)
        if parameter.required:
            parts.append("required")
        elif parameter.default is not Unset and not parameter.boolean:
            parts.append("default: %r" % (parameter.default,))
        if parameter.env is not Unset:
            parts.append("env: %s" % parameter.env)
        return text("; ".join(parts), "argument-description")

    def section(label, parameters, names):
        body = Text()
        body.append(text(label, "group-label")).append(":\n")
        grid = Table.grid(padding=(0, 2))
        grid.add_column(no_wrap=True)
        grid.add_column()
        for parameter in parameters:
            grid.add_row(Text.assemble("  ", names(parameter)), describe(parameter))
        return Group(body, grid)

    def spelling(option):
        style = "flag-name" if option.boolean else "option-name"
        forms = Text(", ").join(text(name, style) for name in reversed(option.names))
        if not option.boolean:
            forms = Text.assemble(forms, " ", metavar(option))
        return forms

    if arguments:
        renders.append(section("arguments", arguments, metavar))
    if options:
        renders.append(section("options", options, spelling))

    renderable = Group(*renders)
    if fancy:
        renderable = Panel(
            renderable,
            title=Text.assemble("[ ", "%s HELP" % " ".join([prog, *(node.name for node in path[1:])]).upper(), " ]", style=styler("panel-title")),
            title_align="left",
        )
    return renderable


__all__ = (
    "render",
)
