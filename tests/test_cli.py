"""Tests for the command-line interface."""

import zipfile

import pytest
from click.testing import CliRunner

from gql_typegen.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def schema_file(tmp_path, schema_sdl):
    path = tmp_path / "schema.graphql"
    path.write_text(schema_sdl)
    return path


class TestGenerate:
    """Tests for the generate command."""

    def test_writes_both_modules(self, runner, schema_file, tmp_path):
        output = tmp_path / "generated"
        result = runner.invoke(main, ["generate", "-s", str(schema_file), "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert "Done! Generated code in" in result.output
        assert "class QueryResolvers(Protocol):" in (output / "server_contract.py").read_text()
        assert "def all_users(" in (output / "client.py").read_text()

    def test_module_names_and_header(self, runner, schema_file, tmp_path):
        output = tmp_path / "generated"
        result = runner.invoke(main, [
            "generate", "-s", str(schema_file), "-o", str(output),
            "--server-module", "contract.py", "--client-module", "ops.py",
            "--header", "# Generated, do not edit",
        ])
        assert result.exit_code == 0, result.output
        assert (output / "contract.py").read_text().startswith("# Generated, do not edit\n")
        assert (output / "ops.py").read_text().startswith("# Generated, do not edit\n")

    def test_paths_from_environment(self, runner, schema_file, tmp_path):
        output = tmp_path / "from-env"
        result = runner.invoke(main, ["generate"], env={
            "GQL_TYPEGEN_SCHEMA": str(schema_file),
            "GQL_TYPEGEN_OUTPUT": str(output),
        })
        assert result.exit_code == 0, result.output
        assert (output / "client.py").exists()

    def test_verbose_summary(self, runner, schema_file, tmp_path):
        result = runner.invoke(main, ["generate", "-s", str(schema_file), "-o", str(tmp_path), "-v"])
        assert result.exit_code == 0, result.output
        assert "Resolver signatures: 6" in result.output
        assert "Client operations: 5" in result.output

    def test_zip_archive(self, runner, schema_sdl, tmp_path):
        archive = tmp_path / "schema.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("schema/types.graphql", schema_sdl)
        output = tmp_path / "generated"
        result = runner.invoke(main, ["generate", "-s", str(archive), "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert "Extracting archive schema.zip" in result.output
        assert (output / "client.py").exists()

    def test_invalid_schema(self, runner, tmp_path):
        schema = tmp_path / "broken.graphql"
        schema.write_text("type Query { a: Missing, b: AlsoMissing }")
        result = runner.invoke(main, ["generate", "-s", str(schema), "-o", str(tmp_path / "out")])
        assert result.exit_code == 1
        assert "Unknown type 'Missing'" in result.output
        assert "Schema is invalid: 2 issue(s)" in result.output
        assert not (tmp_path / "out").exists()


class TestCheck:
    """Tests for the check command."""

    def test_valid_schema(self, runner, schema_file):
        result = runner.invoke(main, ["check", "-s", str(schema_file)])
        assert result.exit_code == 0, result.output
        assert "Schema OK: 4 object type(s), 5 operation(s)" in result.output

    def test_invalid_operation(self, runner, tmp_path):
        schema = tmp_path / "schema.graphql"
        schema.write_text("type Query { a: String }\nquery Q { b }")
        result = runner.invoke(main, ["check", "-s", str(schema)])
        assert result.exit_code == 1
        assert "Cannot query field 'b'" in result.output

    def test_missing_schema_path(self, runner, tmp_path):
        result = runner.invoke(main, ["check", "-s", str(tmp_path / "nope")])
        assert result.exit_code == 2
