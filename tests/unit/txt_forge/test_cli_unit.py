from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from txt_forge import cli
from txt_forge.config import DetectionResult, GitStatus, ProcessResult, RuleState
from txt_forge.exceptions import UnknownTemplateError


@pytest.mark.unit
@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        ([], ["forge"]),
        (["--repo", "x"], ["forge", "--repo", "x"]),
        (["detect", "--json"], ["detect", "--json"]),
        (["--version"], ["--version"]),
        (["-h"], ["-h"]),
    ],
)
def test_normalize_argv_defaults_to_forge(argv: list[str], expected: list[str]) -> None:
    assert cli.normalize_argv(argv) == expected


@pytest.mark.unit
def test_parse_rules_include_wins_over_exclude() -> None:
    assert cli.parse_rules(["docs"], ["docs", "tmp"]) == {"docs": RuleState.INCLUDE, "tmp": RuleState.EXCLUDE}
    assert cli.parse_rules([], []) is None


@pytest.mark.unit
def test_parse_template_ids_validates_against_catalogue() -> None:
    assert cli.parse_template_ids(" python, rust ,") == ["python", "rust"]
    assert cli.parse_template_ids(None) is None
    with pytest.raises(UnknownTemplateError):
        cli.parse_template_ids("python,cobol")


@pytest.mark.unit
def test_format_detection_lists_reasons() -> None:
    result = DetectionResult(git_status=GitStatus.CLEAN)
    result.add("react", "Dependency: react (package.json)")

    assert cli.format_detection(result) == "git: clean\nreact: Dependency: react (package.json)"
    assert cli.format_detection(DetectionResult()).endswith("no technology detected")


@pytest.mark.unit
def test_format_result_lists_files() -> None:
    result = ProcessResult(
        success=True,
        message="Processing Complete",
        output_path="/p/TXT-Forge/Merged",
        files=["Source-Tree.txt"],
        git_ignore_modified=True,
        detected_ids=["python"],
    )

    assert cli.format_result(result).splitlines() == [
        "Processing Complete",
        "detected: python",
        "output: /p/TXT-Forge/Merged",
        "  Source-Tree.txt",
        "added TXT-Forge/ to .gitignore",
    ]


def test_main_templates_lists_catalogue(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["templates"]) == 0

    out = capsys.readouterr().out
    assert out.splitlines()[0].startswith("typescript\tTypeScript\t")


def test_main_gitignore_rejects_unknown_template(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["gitignore", "python", "cobol"]) == 1

    assert "Unknown template identifier. 'cobol'" in capsys.readouterr().err


def test_main_version(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--version"])

    assert exc.value.code == 0
    assert capsys.readouterr().out.startswith("txt-forge ")


def test_main_passes_logging_options(mocker: MockerFixture, tmp_path: Path) -> None:
    setup = mocker.patch.object(cli, "setup_logging")
    log = tmp_path / "run.log"

    assert cli.main(["templates", "--debug", "--log-file", str(log)]) == 0

    setup.assert_called_once_with(str(log), debug=True)


def test_main_reports_invalid_environment_settings(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setenv("TXT_FORGE_MAX_CHARS", "lots")

    assert cli.main(["templates"]) == 1

    assert "Invalid TXT_FORGE_* settings" in capsys.readouterr().err
