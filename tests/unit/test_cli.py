import json
import pytest
from unittest.mock import patch
from typer.testing import CliRunner

from cli import app
from core.exceptions import PersistenceError
from repositories.form_repository import FormRepository

runner = CliRunner()


@pytest.mark.unit
class TestFormCommands:

    def setup_method(self):
        from core.storage.memory_store import InMemoryKeyValueStore

        self.repository = FormRepository(InMemoryKeyValueStore())

    def test_list_forms_empty(self):
        with patch("cli.get_form_repository", return_value=self.repository):
            result = runner.invoke(app, ["list-forms"])

        assert result.exit_code == 0
        assert "No saved forms" in result.output

    def test_list_and_show_form(self, sample_form):
        self.repository.upsert(sample_form)

        with patch("cli.get_form_repository", return_value=self.repository):
            listed = runner.invoke(app, ["list-forms"])
            shown = runner.invoke(app, ["show-form", sample_form.id])

        assert sample_form.id in listed.output
        assert "3 fields" in listed.output
        assert json.loads(shown.output)["fields"][2]["derived"]["parentFieldIds"] == ["birthYear"]

    def test_show_unknown_form(self):
        with patch("cli.get_form_repository", return_value=self.repository):
            result = runner.invoke(app, ["show-form", "form_404"])

        assert result.exit_code == 1

    def test_delete_form(self, sample_form):
        self.repository.upsert(sample_form)

        with patch("cli.get_form_repository", return_value=self.repository):
            result = runner.invoke(app, ["delete-form", sample_form.id])

        assert result.exit_code == 0
        assert self.repository.load_all() == []

    def test_delete_form_storage_failure(self):
        with patch("cli.get_form_repository") as mock_get_repository:
            mock_get_repository.return_value.remove.side_effect = PersistenceError("Could not write forms")
            result = runner.invoke(app, ["delete-form", "form_1"])

        assert result.exit_code == 1


@pytest.mark.unit
class TestFormulaCommands:

    def test_check_formula_ok(self):
        result = runner.invoke(app, ["check-formula", "a + b", "--parent", "a", "--parent", "b"])

        assert result.exit_code == 0
        assert "Formula OK" in result.output

    def test_check_formula_unknown_name(self):
        result = runner.invoke(app, ["check-formula", "a + b", "--parent", "a"])

        assert result.exit_code == 1

    def test_evaluate(self):
        result = runner.invoke(app, ["evaluate", "price * qty", "--value", "price=2.5", "--value", "qty=4"])

        assert result.exit_code == 0
        assert result.output.strip() == "10"

    def test_evaluate_plain_string_value(self):
        result = runner.invoke(app, ["evaluate", 'name + "!"', "--value", "name=Ada"])

        assert result.output.strip() == '"Ada!"'

    def test_evaluate_failure(self):
        result = runner.invoke(app, ["evaluate", "a / 0", "--value", "a=1"])

        assert result.exit_code == 1
