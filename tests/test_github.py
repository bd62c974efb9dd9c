import textwrap

import pytest

from pipeviz.errors import PipelineSyntaxError, UnsupportedFeature
from pipeviz.model import PipelineFormat
from pipeviz.parsers import github


def test_parse_jobs_and_steps(github_workflow):
    raw = github.parse(github_workflow)

    assert raw.format is PipelineFormat.GITHUB_ACTIONS
    assert raw.name == "CI"
    assert [j.name for j in raw.jobs] == ["build", "test", "deploy"]

    build = raw.jobs[0]
    assert [s.name for s in build.steps] == ["uses actions/checkout@v4", "Install", "Build"]
    assert build.steps[0].commands == ("uses: actions/checkout@v4",)
    assert build.steps[2].commands == ("npm run lint", "npm run build")
    assert build.line == 5


def test_needs_condition_and_continue_on_error(github_workflow):
    raw = github.parse(github_workflow)
    test, deploy = raw.jobs[1], raw.jobs[2]

    assert test.needs == ("build",)
    assert deploy.needs == ("test",)
    assert deploy.condition == "github.ref == 'refs/heads/main'"
    assert deploy.steps[0].continue_on_failure is True
    assert deploy.allow_failure is False


def test_unnamed_run_step_label():
    content = textwrap.dedent(
        """\
        jobs:
          lint:
            steps:
              - run: |
                  ruff check .
                  mypy src
        """
    )
    step = github.parse(content).jobs[0].steps[0]
    assert step.name == "run: ruff check ."
    assert step.commands == ("ruff check .", "mypy src")


def test_reusable_workflow_job():
    content = "jobs:\n  call:\n    uses: org/repo/.github/workflows/ci.yml@main\n"
    job = github.parse(content).jobs[0]
    assert job.steps[0].commands == ("uses: org/repo/.github/workflows/ci.yml@main",)


def test_matrix_product_exclude_include():
    matrix = {
        "os": ["linux", "windows"],
        "py": ["3.11", "3.12"],
        "exclude": [{"os": "windows", "py": "3.11"}],
        "include": [{"os": "linux", "experimental": True}, {"os": "mac", "py": "3.12"}],
    }
    combos = github.expand_matrix(matrix, 1)
    assert combos == (
        (("os", "linux"), ("py", "3.11"), ("experimental", "true")),
        (("os", "linux"), ("py", "3.12"), ("experimental", "true")),
        (("os", "windows"), ("py", "3.12")),
        (("os", "mac"), ("py", "3.12")),
    )


def test_expression_matrix_is_not_expanded():
    assert github.expand_matrix("${{ fromJSON(needs.setup.outputs.matrix) }}", 1) == ()
    assert github.expand_matrix({"os": "${{ inputs.os }}"}, 1) == ()


def test_missing_jobs_is_syntax_error():
    with pytest.raises(PipelineSyntaxError) as exc:
        github.parse("name: CI\non: push\n")
    assert "jobs" in exc.value.message


def test_job_without_steps_reports_its_line():
    content = "on: push\njobs:\n  build:\n    runs-on: ubuntu-latest\n"
    with pytest.raises(PipelineSyntaxError) as exc:
        github.parse(content)
    assert exc.value.line == 4
    assert "'build'" in exc.value.message


def test_step_without_run_or_uses():
    content = "jobs:\n  build:\n    steps:\n      - name: nothing\n"
    with pytest.raises(PipelineSyntaxError) as exc:
        github.parse(content)
    assert exc.value.line == 4


def test_malformed_yaml_has_line_number():
    content = "name: CI\njobs:\n  build: {runs-on: ubuntu\n"
    with pytest.raises(PipelineSyntaxError) as exc:
        github.parse(content)
    assert isinstance(exc.value.line, int)
    assert exc.value.line > 1


def test_empty_document():
    with pytest.raises(PipelineSyntaxError) as exc:
        github.parse("")
    assert exc.value.line == 1


def test_top_level_list_is_rejected():
    with pytest.raises(PipelineSyntaxError):
        github.parse("- a\n- b\n")


def test_undefined_alias_is_unsupported():
    with pytest.raises(UnsupportedFeature) as exc:
        github.parse("jobs:\n  build: *missing\n")
    assert "alias" in exc.value.feature
    assert "missing" in exc.value.feature


def test_deeply_nested_document_is_syntax_error():
    with pytest.raises(PipelineSyntaxError) as exc:
        github.parse("jobs: " + "[" * 3000 + "]" * 3000)
    assert exc.value.line == 1
    assert "nested" in exc.value.message
