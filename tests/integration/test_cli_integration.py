import json
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from txt_forge import cli
from txt_forge.config import ProcessResult, RuleState, SaveMode


def touch(path: Path, text: str = "x") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.integration
def test_main_passes_overrides_to_forge(tmp_path: Path, mocker: MockerFixture) -> None:
    forge = mocker.patch.object(cli, "forge", return_value=ProcessResult(success=True, message="ok"))

    code = cli.main(
        [
            "--repo",
            str(tmp_path),
            "--templates",
            "python,sql",
            "--max-chars",
            "5000",
            "--include",
            "docs/notes.txt",
            "--exclude",
            "docs",
            "-i",
            "--no-split",
            "--custom",
            str(tmp_path / "out"),
        ],
    )

    assert code == 0
    args, kwargs = forge.call_args
    assert args == (tmp_path.resolve(), None)
    assert kwargs["template_ids"] == ["python", "sql"]
    assert kwargs["max_chars"] == 5000
    assert kwargs["selection_rules"] == {"docs/notes.txt": RuleState.INCLUDE, "docs": RuleState.EXCLUDE}
    assert kwargs["hide_ignored_in_tree"] is True
    assert kwargs["disable_splitting"] is True
    assert kwargs["save_mode"] == SaveMode.CUSTOM
    assert kwargs["custom_path"] == tmp_path / "out"


@pytest.mark.integration
def test_main_vault_flag_selects_global_mode(tmp_path: Path, mocker: MockerFixture) -> None:
    forge = mocker.patch.object(cli, "forge", return_value=ProcessResult(success=True, message="ok"))

    assert cli.main(["forge", "--repo", str(tmp_path), "--vault"]) == 0

    assert forge.call_args.kwargs["save_mode"] == SaveMode.GLOBAL


@pytest.mark.integration
def test_main_reports_failures_on_stderr(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["--repo", str(tmp_path)])

    assert code == 1
    assert "No matching files found." in capsys.readouterr().err
    assert not (tmp_path / "TXT-Forge").exists()


@pytest.mark.integration
def test_main_detect_json(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    touch(tmp_path / "package.json", json.dumps({"dependencies": {"vue": "^3"}}))

    assert cli.main(["detect", "--repo", str(tmp_path), "--json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["ids"] == ["vuejs", "javascript"]
    assert payload["gitStatus"] == "none"


@pytest.mark.integration
def test_main_tree_marks_ignored_entries(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    touch(tmp_path / "src" / "app.py")
    touch(tmp_path / "venv" / "out.py")
    touch(tmp_path / ".env")

    assert cli.main(["tree", "--repo", str(tmp_path), "--templates", "python"]) == 0

    out = capsys.readouterr().out
    assert "│   └── out.py [-]" in out
    assert "│   └── app.py\n" in out
    assert ".env [-]" in out


@pytest.mark.integration
def test_main_tree_json_expands_one_folder(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    touch(tmp_path / "node_modules" / "pkg" / "index.js")

    assert cli.main(["tree", "--repo", str(tmp_path), "--path", "node_modules", "--json"]) == 0

    nodes = json.loads(capsys.readouterr().out)
    assert nodes[0]["path"] == "node_modules/pkg"
    assert nodes[0]["isIgnored"] is True
    assert nodes[0]["children"][0]["name"] == "index.js"


@pytest.mark.integration
def test_main_gitignore(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["gitignore", "go"]) == 0

    out = capsys.readouterr().out
    assert out.startswith("# Go Configuration\n")
    assert "vendor/" in out
