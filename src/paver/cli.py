"""CLI for managing paver rules.

Rules live in a SQLite database (~/.paver/paver.db by default, or $PAVER_DB)
that the PreToolUse hook reads on every tool call.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from paver.core.config import Config, load_config
from paver.core.matcher import DESCRIPTION_WIDTH, truncate
from paver.core.pave import (
    DEFAULT_SETTINGS,
    HOOK_EVENT,
    agents_md_lines,
    install_hook,
    render_agents_md,
)
from paver.core.rules import MatchKind, Rule, first_word
from paver.core.store import SQLiteRuleStore, StoreError, open_store
from paver.paver import run_hook

console = Console()
err_console = Console(stderr=True)

# --cmd rules correct the Bash tool's command parameter
BASH_TOOL = "Bash"
BASH_PARAM = "command"


def setup_logging(verbose: bool) -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--db",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Rule database (default: ~/.paver/paver.db, or $PAVER_DB)",
)
@click.option("--json", "json_output", is_flag=True, help="Output JSON")
@click.pass_context
def main(ctx: click.Context, verbose: bool, db: Path | None, json_output: bool) -> None:
    """paver - correct agent tool calls before they run.

    Tool-name aliases block calls to tools that do not exist. Correction
    rules rewrite the parameters of real tools (flags, commands, literals,
    regex patterns and whole-command recipes).
    """
    ctx.ensure_object(dict)
    ctx.obj["db"] = db
    ctx.obj["json"] = json_output
    setup_logging(verbose)


def get_config(ctx: click.Context) -> Config:
    try:
        config = load_config(Path.cwd())
    except ValueError as e:
        raise click.ClickException(str(e)) from None
    if ctx.obj.get("db"):
        config = replace(config, db_path=ctx.obj["db"])
    return config


def get_store(ctx: click.Context) -> SQLiteRuleStore:
    """Open the rule store named by --db or the config."""
    config = get_config(ctx)
    logging.getLogger(__name__).debug("opening rule store %s", config.db_path)
    try:
        return open_store(config)
    except StoreError as e:
        raise click.ClickException(f"open store: {e}") from None


# =============================================================================
# Rule Commands
# =============================================================================


def build_rule(
    args: tuple[str, ...],
    *,
    delete: bool,
    cmd: str | None,
    flag: tuple[str, str] | None,
    replace_with: str | None,
    tool: str | None,
    param: str | None,
    regex: bool,
    recipe: bool,
    message: str | None,
) -> Rule:
    """Build a rule from alias command options. Raises click.UsageError on bad combinations."""
    if cmd and (tool or param):
        raise click.UsageError("--cmd and --tool/--param are mutually exclusive")
    if flag and not cmd:
        raise click.UsageError("--flag requires --cmd")
    if replace_with and not cmd:
        raise click.UsageError("--replace requires --cmd")
    if regex and not tool:
        raise click.UsageError("--regex requires --tool/--param")
    if bool(tool) != bool(param):
        raise click.UsageError("--tool and --param must be used together")
    if flag and replace_with:
        raise click.UsageError("--flag and --replace are mutually exclusive")
    if recipe and (cmd or tool or param or flag or replace_with or regex):
        raise click.UsageError(
            "--recipe is mutually exclusive with --cmd/--tool/--param/--flag/--replace/--regex"
        )

    def positional(usage_set: str, usage_delete: str) -> tuple[str, str]:
        if delete:
            if len(args) != 1:
                raise click.UsageError(usage_delete)
            return args[0], ""
        if len(args) != 2:
            raise click.UsageError(usage_set)
        return args[0], args[1]

    message = message or None

    # --cmd with --flag
    if cmd and flag:
        old, new = flag
        return Rule(
            old, new, BASH_TOOL, BASH_PARAM, cmd, MatchKind.FLAG, message
        )

    # --cmd with --replace
    if cmd and replace_with:
        return Rule(
            cmd, replace_with, BASH_TOOL, BASH_PARAM, cmd, MatchKind.COMMAND, message
        )

    # --cmd with positional args
    if cmd:
        from_, to = positional(
            "--cmd requires two positional arguments: FROM TO",
            "--delete --cmd requires one positional arg (the FROM pattern to delete)",
        )
        return Rule(from_, to, BASH_TOOL, BASH_PARAM, cmd, MatchKind.LITERAL, message)

    # --tool/--param
    if tool:
        from_, to = positional(
            "--tool/--param requires two positional arguments: FROM TO",
            "--delete --tool/--param requires one positional arg (the FROM pattern)",
        )
        kind = MatchKind.REGEX if regex else MatchKind.LITERAL
        return Rule(from_, to, tool, param or "", "", kind, message)

    # --recipe
    if recipe:
        from_, to = positional(
            "--recipe requires two positional arguments: FROM SCRIPT",
            "--delete --recipe requires one positional arg (the FROM command prefix)",
        )
        return Rule(
            from_, to, BASH_TOOL, BASH_PARAM, first_word(from_), MatchKind.RECIPE, message
        )

    # Plain tool-name alias
    from_, to = positional(
        "requires exactly two arguments: paver alias FROM TO",
        "--delete requires exactly one argument: paver alias --delete FROM",
    )
    return Rule(from_, to, message=message)


@main.command()
@click.argument("args", nargs=-1)
@click.option("--delete", is_flag=True, help="Delete the specified alias or rule")
@click.option("--cmd", help="Command name for CLI corrections (implies tool=Bash, param=command)")
@click.option("--flag", nargs=2, metavar="OLD NEW", help="Flag correction (requires --cmd)")
@click.option("--replace", "replace_with", metavar="NEW", help="Substitute command name (requires --cmd)")
@click.option("--tool", help="Tool name for parameter corrections")
@click.option("--param", help="Parameter name to correct (requires --tool)")
@click.option("--regex", is_flag=True, help="Treat FROM as a regex pattern (requires --tool/--param)")
@click.option("--recipe", is_flag=True, help="Whole-command replacement with a script (FROM is a command prefix)")
@click.option("--message", help="Custom message shown when the correction fires")
@click.pass_context
def alias(
    ctx: click.Context,
    args: tuple[str, ...],
    delete: bool,
    cmd: str | None,
    flag: tuple[str, str] | None,
    replace_with: str | None,
    tool: str | None,
    param: str | None,
    regex: bool,
    recipe: bool,
    message: str | None,
) -> None:
    """Create, update or delete a tool-name alias or correction rule.

    \b
    Examples:
      paver alias read_file Read
      paver alias --cmd scp --flag r R --message "scp uses -R for recursive"
      paver alias --cmd grep --replace rg
      paver alias --cmd scp "user@host:" "user@newhost:"
      paver alias --tool Bash --param command --regex 'curl\\s+-k\\b' 'curl --cacert cert.pem'
      paver alias --recipe "gt await-signal" 'gt mol status'
      paver alias --delete read_file
    """
    rule = build_rule(
        args,
        delete=delete,
        cmd=cmd,
        flag=flag,
        replace_with=replace_with,
        tool=tool,
        param=param,
        regex=regex,
        recipe=recipe,
        message=message,
    )

    store = get_store(ctx)
    try:
        if delete:
            if not store.delete_rule(*rule.key):
                raise click.ClickException(f"alias '{rule.from_}' not found")
            if ctx.obj["json"]:
                echo_json({"action": "deleted", "from": rule.from_})
            else:
                console.print(f"Alias deleted: {rule.from_}", markup=False)
            return

        store.upsert_rule(rule)
        if ctx.obj["json"]:
            echo_json({"action": "set", "from": rule.from_, "to": rule.to})
        elif rule.is_tool_name_alias:
            console.print(f"Alias set: {rule.from_} -> {rule.to}", markup=False)
        else:
            console.print(
                f"Rule set: {rule.command} {rule.from_} -> {truncate(rule.to, DESCRIPTION_WIDTH)} "
                f"({rule.match_kind})",
                markup=False,
            )
    except StoreError as e:
        raise click.ClickException(str(e)) from None
    finally:
        store.close()


@main.command()
@click.pass_context
def aliases(ctx: click.Context) -> None:
    """List all tool-name aliases and correction rules."""
    store = get_store(ctx)
    try:
        rules = store.list_rules()
    except StoreError as e:
        raise click.ClickException(str(e)) from None
    finally:
        store.close()

    if ctx.obj["json"]:
        echo_json([r.to_dict() for r in rules])
        return
    if not rules:
        err_console.print("No aliases configured.")
        return

    table = Table(title="paver rules")
    table.add_column("FROM", style="cyan")
    table.add_column("TO", style="green")
    table.add_column("TYPE")
    table.add_column("COMMAND")
    table.add_column("CREATED", style="dim")
    for r in rules:
        # rule text is user input: [/] in a pattern must not be read as markup
        table.add_row(
            escape(r.from_),
            escape(truncate(r.to, DESCRIPTION_WIDTH)),
            str(r.match_kind),
            escape(r.command),
            r.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


# =============================================================================
# Pave Commands
# =============================================================================


@main.command()
@click.option("--hook", is_flag=True, help="Install the PreToolUse intercept hook")
@click.option("--agents-md", is_flag=True, help="Generate AGENTS.md rules from the rule set")
@click.option(
    "--append",
    "append_to",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Append generated rules to this file (with --agents-md)",
)
@click.option(
    "--settings",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Claude Code settings file (default: ~/.claude/settings.json)",
)
@click.pass_context
def pave(
    ctx: click.Context,
    hook: bool,
    agents_md: bool,
    append_to: Path | None,
    settings: Path | None,
) -> None:
    """Turn rules into intercepts.

    --hook is reactive: it installs a PreToolUse hook that blocks aliased tool
    names and rewrites corrected parameters on every call. --agents-md is
    preventive: it renders the rules as AGENTS.md / CLAUDE.md instructions.
    """
    if not hook and not agents_md:
        raise click.UsageError("specify --hook or --agents-md (or both)")
    if hook:
        pave_hook(ctx, settings or DEFAULT_SETTINGS)
    if agents_md:
        pave_agents_md(ctx, append_to)


def pave_hook(ctx: click.Context, settings_path: Path) -> None:
    try:
        installed = install_hook(settings_path)
    except (OSError, ValueError) as e:
        raise click.ClickException(str(e)) from None

    if ctx.obj["json"]:
        status = "configured" if installed else "already_configured"
        echo_json({"status": status, "hook": HOOK_EVENT})
    elif installed:
        console.print("[green]PreToolUse intercept hook installed![/green]")
        console.print("Aliased tool names are blocked and corrected parameters rewritten.")
        console.print("[dim]Manage rules with: paver alias FROM TO[/dim]")
    else:
        console.print("PreToolUse hook already installed.")


def pave_agents_md(ctx: click.Context, append_to: Path | None) -> None:
    store = get_store(ctx)
    try:
        rules = store.list_rules()
    except StoreError as e:
        raise click.ClickException(str(e)) from None
    finally:
        store.close()

    if not rules:
        if ctx.obj["json"]:
            echo_json({"status": "no_aliases", "rules": []})
        else:
            err_console.print("No aliases configured. Add some with: paver alias FROM TO")
        return

    if ctx.obj["json"]:
        echo_json({"status": "generated", "rules": agents_md_lines(rules), "count": len(rules)})
        return

    output = render_agents_md(rules)
    if append_to is not None:
        try:
            with open(append_to, "a") as f:
                f.write("\n" + output)
        except OSError as e:
            raise click.ClickException(f"write {append_to}: {e}") from None
        console.print(f"Appended {len(rules)} rules to {append_to}", markup=False)
        return
    click.echo(output, nl=False)


@main.command("pave-check", hidden=True)
def pave_check() -> None:
    """PreToolUse hook entry point (reads the tool call from stdin)."""
    sys.exit(run_hook(sys.stdin, sys.stdout, sys.stderr, Path.cwd()))


if __name__ == "__main__":
    main()
