"""Tests for the entityforge CLI."""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from entityforge.cli.main import cli


_SCHEMA_DIR = Path(__file__).resolve().parents[2] / "metadata" / "schemas"


@pytest.fixture
def runner():
    return CliRunner()


def _write_yaml(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data))
    return path


class TestSchemaValidate:
    def test_real_schemas_pass(self, runner):
        result = runner.invoke(cli, ["schema", "validate", "--path", str(_SCHEMA_DIR)])
        assert result.exit_code == 0, result.output
        assert "All schemas are valid." in result.output
        assert "Checked 3 schema document(s)." in result.output

    def test_errors_exit_nonzero(self, runner, tmp_path):
        _write_yaml(tmp_path / "bad.yaml", {"model": "bad", "fields": {"id": {}}})
        result = runner.invoke(cli, ["schema", "validate", "--path", str(tmp_path)])
        assert result.exit_code == 1
        assert "[ERROR] bad" in result.output

    def test_warnings_pass_unless_strict(self, runner, tmp_path):
        _write_yaml(tmp_path / "w.yaml", {
            "model": "w", "table": "w", "fields": {"id": {}}, "filterable": ["", "id"],
        })
        relaxed = runner.invoke(cli, ["schema", "validate", "--path", str(tmp_path)])
        assert relaxed.exit_code == 0
        assert "1 warning(s) found." in relaxed.output

        strict = runner.invoke(cli, ["schema", "validate", "--path", str(tmp_path), "--strict"])
        assert strict.exit_code == 1

    def test_missing_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["schema", "validate", "--path", str(tmp_path / "nope")])
        assert result.exit_code == 1

    def test_path_from_environment(self, runner, monkeypatch):
        monkeypatch.setenv("ENTITYFORGE_SCHEMA_PATH", str(_SCHEMA_DIR))
        result = runner.invoke(cli, ["schema", "validate"])
        assert result.exit_code == 0, result.output


class TestSchemaList:
    def test_lists_entities(self, runner):
        result = runner.invoke(cli, ["schema", "list", "--path", str(_SCHEMA_DIR)])
        assert result.exit_code == 0
        assert "✓ widgets (table: widgets, 5 fields, 2 relationships)" in result.output
        assert "✓ categories (table: categories, 3 fields, 0 relationships)" in result.output

    def test_broken_entity_is_marked(self, runner, tmp_path):
        _write_yaml(tmp_path / "bad.yaml", {"model": "bad", "fields": {"id": {}}})
        result = runner.invoke(cli, ["schema", "list", "--path", str(tmp_path)])
        assert result.exit_code == 0
        assert "✗ bad" in result.output

    def test_empty_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["schema", "list", "--path", str(tmp_path)])
        assert "No schema documents found." in result.output


class TestSchemaShow:
    def test_yaml_output(self, runner):
        result = runner.invoke(cli, ["schema", "show", "--path", str(_SCHEMA_DIR), "widgets", "--context", "list"])
        assert result.exit_code == 0, result.output
        data = yaml.safe_load(result.output)
        assert list(data["contexts"]) == ["list"]
        assert "secret" not in data["contexts"]["list"]["fields"]

    def test_json_output(self, runner):
        result = runner.invoke(
            cli, ["schema", "show", "--path", str(_SCHEMA_DIR), "categories", "--format", "json"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["model"] == "categories"
        assert data["contexts"]["detail"]["fields"]["notes"]["show_in"] == ["detail", "form"]

    def test_unknown_model(self, runner):
        result = runner.invoke(cli, ["schema", "show", "--path", str(_SCHEMA_DIR), "gadgets"])
        assert result.exit_code == 1
