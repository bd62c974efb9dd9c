import pytest

from pipeviz.detect import coerce_format, detect_format
from pipeviz.errors import UnknownFormat
from pipeviz.model import PipelineFormat


def test_groovy_extension_is_jenkins():
    assert detect_format("build.groovy", "pipeline {}") is PipelineFormat.JENKINS


def test_jenkinsfile_basename_is_jenkins():
    assert detect_format("ci/Jenkinsfile", "pipeline {}") is PipelineFormat.JENKINS
    assert detect_format("Jenkinsfile.release", "pipeline {}") is PipelineFormat.JENKINS


def test_gitlab_filename(gitlab_config):
    assert detect_format(".gitlab-ci.yml", gitlab_config) is PipelineFormat.GITLAB_CI


def test_stages_without_jobs_is_gitlab(gitlab_config):
    assert detect_format("pipeline.yml", gitlab_config) is PipelineFormat.GITLAB_CI


def test_stages_with_include_is_gitlab():
    content = "include:\n  - local: ci/common.yml\nstages:\n  - build\njobs:\n  script: echo\n"
    assert detect_format("ci.yaml", content) is PipelineFormat.GITLAB_CI


def test_jobs_key_is_github(github_workflow):
    assert detect_format("ci.yml", github_workflow) is PipelineFormat.GITHUB_ACTIONS


def test_nested_keys_do_not_count():
    content = "build:\n  stages:\n    - a\n"
    with pytest.raises(UnknownFormat) as exc:
        detect_format("ci.yml", content)
    assert "stages" in exc.value.reason


def test_unsupported_extension():
    with pytest.raises(UnknownFormat) as exc:
        detect_format("pipeline.json", "{}")
    assert exc.value.filename == "pipeline.json"
    assert "'.json'" in exc.value.reason


def test_missing_extension():
    with pytest.raises(UnknownFormat):
        detect_format("pipeline", "jobs:\n")


@pytest.mark.parametrize(
    "hint, expected",
    [
        ("gitlab", PipelineFormat.GITLAB_CI),
        ("GitLab-CI", PipelineFormat.GITLAB_CI),
        ("github_actions", PipelineFormat.GITHUB_ACTIONS),
        ("jenkinsfile", PipelineFormat.JENKINS),
        (PipelineFormat.JENKINS, PipelineFormat.JENKINS),
    ],
)
def test_coerce_format(hint, expected):
    assert coerce_format(hint) is expected


def test_hint_overrides_content(github_workflow):
    assert detect_format("ci.yml", github_workflow, "gitlab") is PipelineFormat.GITLAB_CI


def test_bad_hint():
    with pytest.raises(UnknownFormat) as exc:
        detect_format("ci.yml", "jobs:\n", "circleci")
    assert "circleci" in exc.value.reason
