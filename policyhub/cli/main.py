"""Main CLI entry point."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from db.enums import FieldType, RowStatus
from policyhub.services.authoring import RuleAuthoringService
from policyhub.services.errors import DuplicateRuleError, PolicyError, PolicyValidationError
from policyhub.services.schemas import CustomField, RuleDraft, RuleTypeDraft
from policyhub.services.store import RuleStore

app = typer.Typer(
    name="policyhub",
    help="Policy rule authoring CLI",
    add_completion=False,
)

console = Console()

_STATUS_STYLES: dict[RowStatus, str] = {
    RowStatus.CREATED: "green",
    RowStatus.DUPLICATE: "yellow",
    RowStatus.INVALID: "red",
    RowStatus.FAILED: "red",
}


def parse_field_spec(spec: str) -> CustomField:
    """Parse ``'Label[:type][:required]'``, e.g. ``'Diagnosis:icdCode:required'``."""
    label, *flags = [p.strip() for p in spec.split(":")]
    if not label:
        raise typer.BadParameter(f"Field '{spec}' has no label")
    field_type = FieldType.STRING
    required = False
    for flag in flags:
        if flag == "required":
            required = True
        elif flag in {t.value for t in FieldType}:
            field_type = FieldType(flag)
        elif flag:
            raise typer.BadParameter(
                f"Unknown flag '{flag}' in field '{spec}'. Expected a type "
                f"({', '.join(t.value for t in FieldType)}) or 'required'"
            )
    return CustomField(key="", label=label, type=field_type, required=required)


def parse_inputs(pairs: list[str]) -> dict[str, str]:
    """Parse repeated ``key=value`` options."""
    inputs: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Invalid input '{pair}'. Expected format: key=value")
        inputs[key.strip()] = value
    return inputs


def _fail(exc: PolicyError) -> NoReturn:
    console.print(f"[red]{exc}[/red]")
    if isinstance(exc, PolicyValidationError):
        for key, message in exc.errors.items():
            console.print(f"  {key}: {message}")
    if isinstance(exc, DuplicateRuleError):
        console.print(f"  Existing statement: {exc.duplicate.statement or '-'}")
        console.print("  Re-run with --allow-duplicate to save anyway")
    raise typer.Exit(code=1)


@contextmanager
def _open_store(ctx: typer.Context) -> Iterator[RuleStore]:
    """Local database store, or the HTTP store when ``--remote`` was given."""
    remote: Optional[str] = (ctx.obj or {}).get("remote")
    if remote:
        from policyhub.services.http_store import HttpRuleStore

        yield HttpRuleStore(remote)
        return

    from db.connection import get_session
    from policyhub.services.store import SqlRuleStore

    with get_session() as session:
        yield SqlRuleStore(session, changed_by="cli")


@app.callback()
def main(
    ctx: typer.Context,
    remote: Optional[str] = typer.Option(
        None,
        "--remote",
        envvar="POLICYHUB_REMOTE",
        help="Base URL of a PolicyHub API (e.g. http://localhost:8000/api)",
    ),
):
    """Author policy rules locally or against a remote PolicyHub API."""
    ctx.obj = {"remote": remote}


@app.command()
def init_db(
    force: bool = typer.Option(False, "--force", "-f", help="Drop and recreate tables")
):
    """Initialize the database schema."""
    from db.connection import init_database

    with console.status("Initializing database..."):
        init_database(drop_existing=force)
        if force:
            console.print("[yellow]Dropped existing tables[/yellow]")

    console.print("[green]Database initialized successfully[/green]")


@app.command()
def clients(ctx: typer.Context):
    """List clients."""
    try:
        with _open_store(ctx) as store:
            rows = store.list_clients()
    except PolicyError as exc:
        _fail(exc)

    if not rows:
        console.print("[yellow]No clients found[/yellow]")
        return

    table = Table(title="Clients")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Name", style="green")
    table.add_column("Project", justify="right")
    for c in rows:
        table.add_row(str(c.client_id), c.client_name, str(c.project_id))
    console.print(table)


@app.command("add-client")
def add_client(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", help="Client name"),
    project: int = typer.Option(..., "--project", "-p", help="Project ID"),
):
    """Add a client."""
    try:
        with _open_store(ctx) as store:
            client = store.create_client(name, project)
    except PolicyError as exc:
        _fail(exc)
    console.print(f"[green]Added client: {client.client_name}[/green] (project {client.project_id})")


@app.command("rule-types")
def rule_types(ctx: typer.Context):
    """List rule types with their fields and usage."""
    try:
        with _open_store(ctx) as store:
            summaries = RuleAuthoringService(store).list_rule_type_summaries()
    except PolicyError as exc:
        _fail(exc)

    if not summaries:
        console.print("[yellow]No rule types defined[/yellow]")
        return

    table = Table(title="Rule Types")
    table.add_column("ID", style="cyan", justify="right")
    table.add_column("Name", style="green")
    table.add_column("Fields")
    table.add_column("Rules", justify="right")
    for s in summaries:
        fields = ", ".join(
            f"{f['label']} ({f['key']}, {f['type']}{', required' if f['required'] else ''})"
            for f in s["customFields"]
        )
        table.add_row(str(s["ruletype_id"]), s["name"], fields, str(s["rule_count"]))
    console.print(table)


@app.command("add-rule-type")
def add_rule_type(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", help="Rule type name (unique)"),
    fields: list[str] = typer.Option(
        ..., "--field", "-f", help="Field as Label[:type][:required]; repeat in display order"
    ),
):
    """Define a new rule type."""
    draft = RuleTypeDraft(name=name, custom_fields=[parse_field_spec(f) for f in fields])
    try:
        with _open_store(ctx) as store:
            rule_type = store.create_rule_type(draft)
    except PolicyError as exc:
        _fail(exc)

    console.print(f"[green]Added rule type: {rule_type.name}[/green] (id {rule_type.ruletype_id})")
    for f in rule_type.custom_fields:
        console.print(f"  {f.key}: {f.label} [{f.type.value}]{' *' if f.required else ''}")


@app.command("delete-rule-type")
def delete_rule_type(
    ctx: typer.Context,
    ruletype_id: int = typer.Argument(..., help="Rule type ID"),
):
    """Delete a rule type that no rule references."""
    try:
        with _open_store(ctx) as store:
            RuleAuthoringService(store).delete_rule_type(ruletype_id)
    except PolicyError as exc:
        _fail(exc)
    console.print(f"[green]Deleted rule type {ruletype_id}[/green]")


@app.command()
def form(
    ctx: typer.Context,
    ruletype_id: int = typer.Argument(..., help="Rule type ID"),
):
    """Show the input form a rule type produces."""
    try:
        with _open_store(ctx) as store:
            config = RuleAuthoringService(store).form(ruletype_id)
    except PolicyError as exc:
        _fail(exc)

    table = Table(title=f"Form: {config['name']}")
    table.add_column("Key", style="cyan")
    table.add_column("Label", style="green")
    table.add_column("Type")
    table.add_column("Placeholder")
    table.add_column("Required", justify="center")
    for f in config["fields"]:
        table.add_row(
            f["key"], f["label"], f["fieldType"], f["placeholder"], "Yes" if f["required"] else ""
        )
    console.print(table)


@app.command()
def rules(
    ctx: typer.Context,
    project: int = typer.Option(..., "--project", "-p", help="Project ID"),
    ruletype_id: Optional[int] = typer.Option(None, "--rule-type", "-t", help="Rule type ID"),
):
    """List rules for a project, global rules included."""
    try:
        with _open_store(ctx) as store:
            found = store.list_rules(project, ruletype_id)
    except PolicyError as exc:
        _fail(exc)

    if not found:
        console.print("[yellow]No rules found[/yellow]")
        return

    table = Table(title=f"Rules for project {project}")
    table.add_column("Rule ID", style="cyan")
    table.add_column("Project", justify="right")
    table.add_column("Type", justify="right")
    table.add_column("Version", justify="right")
    table.add_column("Statement", style="green")
    for r in found:
        table.add_row(
            r.rule_id, str(r.project_id), str(r.ruletype_id), str(r.version), r.statement or ""
        )
    console.print(table)


@app.command()
def preview(
    ctx: typer.Context,
    ruletype_id: int = typer.Option(..., "--rule-type", "-t", help="Rule type ID"),
    inputs: list[str] = typer.Option([], "--input", "-i", help="Input as key=value"),
):
    """Render the statement for a set of inputs without saving."""
    try:
        with _open_store(ctx) as store:
            result = RuleAuthoringService(store).preview(ruletype_id, parse_inputs(inputs))
    except PolicyError as exc:
        _fail(exc)

    console.print(result["statement"] or "[dim](no fields)[/dim]")
    for key, message in result["errors"].items():
        console.print(f"[red]  {key}: {message}[/red]")
    for key, message in result["warnings"].items():
        console.print(f"[yellow]  {key}: {message}[/yellow]")


@app.command("add-rule")
def add_rule(
    ctx: typer.Context,
    project: int = typer.Option(..., "--project", "-p", help="Project ID"),
    ruletype_id: int = typer.Option(..., "--rule-type", "-t", help="Rule type ID"),
    inputs: list[str] = typer.Option([], "--input", "-i", help="Input as key=value"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    category: Optional[int] = typer.Option(None, "--category", help="Category ID"),
    allow_duplicate: bool = typer.Option(
        False, "--allow-duplicate", help="Save even if an equal rule exists"
    ),
):
    """Create a rule."""
    draft = RuleDraft(
        project_id=project,
        ruletype_id=ruletype_id,
        inputs=dict(parse_inputs(inputs)),
        category_id=category,
        rule_description=description,
    )
    try:
        with _open_store(ctx) as store:
            rule = RuleAuthoringService(store).create_rule(draft, allow_duplicate=allow_duplicate)
    except PolicyError as exc:
        _fail(exc)

    console.print(f"[green]Created rule {rule.rule_id}[/green]")
    console.print(f"  {rule.statement}")


@app.command("delete-rule")
def delete_rule(
    ctx: typer.Context,
    rule_id: str = typer.Argument(..., help="Rule ID"),
):
    """Delete a rule."""
    try:
        with _open_store(ctx) as store:
            RuleAuthoringService(store).delete_rule(rule_id)
    except PolicyError as exc:
        _fail(exc)
    console.print(f"[green]Deleted rule {rule_id}[/green]")


@app.command()
def versions(
    ctx: typer.Context,
    rule_id: str = typer.Argument(..., help="Rule ID"),
):
    """Show the saved history of a rule."""
    try:
        with _open_store(ctx) as store:
            history = store.list_rule_versions(rule_id)
    except PolicyError as exc:
        _fail(exc)

    if not history:
        console.print("[yellow]No previous versions[/yellow]")
        return

    table = Table(title=f"History of {rule_id}")
    table.add_column("Version", style="cyan", justify="right")
    table.add_column("Changed At")
    table.add_column("By")
    table.add_column("Statement", style="green")
    for v in history:
        table.add_row(str(v.version), v.changed_at, v.changed_by, v.data.statement or "")
    console.print(table)


@app.command("import")
def import_file(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="csv, tsv or one-value-per-line text file"),
    project: int = typer.Option(..., "--project", "-p", help="Project ID"),
    ruletype_id: int = typer.Option(..., "--rule-type", "-t", help="Rule type ID"),
    columns: Optional[list[str]] = typer.Option(
        None, "--column", "-c", help="Column to import; repeat for several (default: all)"
    ),
    allow_duplicates: bool = typer.Option(
        False, "--allow-duplicates", help="Create rows equal to existing rules"
    ),
    workers: Optional[int] = typer.Option(
        None, "--workers", "-w", min=1, help="Parallel creations (remote only)"
    ),
):
    """Mass-import rules from a delimited file."""
    from policyhub.services.mass_import import MassImportService

    if not file.exists():
        raise typer.BadParameter(f"File not found: {file}")

    console.print(f"Importing {file} into project {project}...")
    try:
        with _open_store(ctx) as store:
            svc = MassImportService(store, max_workers=workers)
            table = svc.parse_file(file)
            result = svc.import_table(
                table,
                project_id=project,
                ruletype_id=ruletype_id,
                columns=columns or None,
                allow_duplicates=allow_duplicates,
            )
    except PolicyError as exc:
        _fail(exc)

    if result.notice:
        console.print(f"[yellow]{result.notice}[/yellow]")

    summary = Table(title="Import Results")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", style="green", justify="right")
    summary.add_row("Rows", str(len(result.rows)))
    summary.add_row("Created", str(result.created))
    summary.add_row("Duplicates", str(result.duplicates))
    summary.add_row("Invalid", str(result.invalid))
    summary.add_row("Failed", str(result.failed))
    console.print(summary)

    problems = [r for r in result.rows if r.status != RowStatus.CREATED]
    for r in problems[:10]:
        style = _STATUS_STYLES[r.status]
        console.print(f"  [{style}]Row {r.row} {r.status.value}[/{style}]: {r.message}")
    if len(problems) > 10:
        console.print(f"  ... and {len(problems) - 10} more")

    for r in result.rows:
        for key, message in r.warnings.items():
            console.print(f"  [yellow]Row {r.row} warning[/yellow]: {key}: {message}")

    if result.failed:
        raise typer.Exit(code=1)


@app.command()
def serve():
    """Run the HTTP API."""
    from app.main import start

    start()


if __name__ == "__main__":
    app()
