import json
import typer

from typer import Argument, Option

from core.exceptions import PersistenceError
from repositories.form_repository import get_form_repository
from services.formula_service import FormulaError, check_formula, evaluate_formula

app = typer.Typer()


@app.command()
def list_forms():
    """List saved forms"""
    forms = get_form_repository().load_all()
    if not forms:
        typer.echo("No saved forms")
        return
    for form in forms:
        typer.echo(f"{form.id}\t{form.name}\t{len(form.fields)} fields\t{form.created_at.isoformat()}")


@app.command()
def show_form(form_id: str = Argument(...)):
    """Print a saved form as JSON"""
    form = get_form_repository().get(form_id)
    if form is None:
        typer.echo(f"Form '{form_id}' not found", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(form.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2))


@app.command()
def delete_form(form_id: str = Argument(...)):
    """Delete a saved form"""
    try:
        forms = get_form_repository().remove(form_id)
    except PersistenceError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {form_id}, {len(forms)} form(s) left")


@app.command(name="check-formula")
def check_formula_cmd(
    formula: str = Argument(...),
    parent: list[str] = Option([], "--parent", help="Parent field id, repeatable"),
):
    """Check a formula for syntax errors and unknown names"""
    error = check_formula(formula, parent)
    if error:
        typer.echo(f"Invalid formula: {error}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Formula OK")


@app.command()
def evaluate(
    formula: str = Argument(...),
    value: list[str] = Option([], "--value", help="FIELD_ID=JSON, repeatable"),
):
    """Evaluate a formula against the given parent values"""
    values = {}
    for item in value:
        field_id, _, raw = item.partition("=")
        try:
            values[field_id] = json.loads(raw)
        except json.JSONDecodeError:
            values[field_id] = raw

    try:
        result = evaluate_formula(formula, values)
    except FormulaError as e:
        typer.echo(f"Error in formula: {e.reason}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(result))


if __name__ == "__main__":
    app()
