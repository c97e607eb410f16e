import json

from typer.testing import CliRunner

from actiontap import __version__
from actiontap.cli import app

runner = CliRunner()

SCENARIO = "Action item: John will prepare the report by Friday."


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_extract_json(tmp_path, config_path):
    transcript = tmp_path / "meeting.txt"
    transcript.write_text(SCENARIO)

    result = runner.invoke(app, ["extract", str(transcript), "--json"])
    assert result.exit_code == 0
    items = json.loads(result.output)
    assert len(items) == 2
    assert {item["assignee"] for item in items} == {"John"}
    assert all(item["status"] == "pending" for item in items)
    assert all(item["due_date"] for item in items)


def test_extract_reports_empty_transcript(tmp_path, config_path):
    transcript = tmp_path / "meeting.txt"
    transcript.write_text("Nothing to see here.")

    result = runner.invoke(app, ["extract", str(transcript)])
    assert result.exit_code == 0
    assert "No action items found." in result.output


def test_extract_submit_requires_credentials(tmp_path, config_path):
    transcript = tmp_path / "meeting.txt"
    transcript.write_text(SCENARIO)

    result = runner.invoke(app, ["extract", str(transcript), "--submit"])
    assert result.exit_code == 1
    assert "Notion API key" in result.output


def test_listen_replays_file(tmp_path, config_path):
    transcript = tmp_path / "meeting.txt"
    transcript.write_text(SCENARIO)

    result = runner.invoke(app, ["listen", "--file", str(transcript), "--delay", "0", "--no-submit"])
    assert result.exit_code == 0, result.output
    assert "Action item" in result.output
    assert 'Meeting summary for "Team Meeting"' in result.output


def test_config_updates_and_masks_key(config_path):
    result = runner.invoke(app, ["config", "--notion-api-key", "secret", "--notion-database-id", "db123"])
    assert result.exit_code == 0
    assert "Configuration updated." in result.output

    shown = runner.invoke(app, ["config", "--show"])
    assert shown.exit_code == 0
    data = json.loads(shown.output)
    assert data["notion_api_key"] == "********"
    assert data["notion_database_id"] == "db123"
