import textwrap

import pytest

from pipeviz.errors import PipelineSyntaxError, UnsupportedFeature
from pipeviz.model import PipelineFormat
from pipeviz.parsers import gitlab


def _jobs(raw):
    return {j.name: j for j in raw.jobs}


def test_parse_stages_and_jobs(gitlab_config):
    raw = gitlab.parse(gitlab_config)

    assert raw.format is PipelineFormat.GITLAB_CI
    assert raw.stage_order == (".pre", "build", "test", "deploy", ".post")
    assert [j.name for j in raw.jobs] == ["build-job", "unit-test", "lint", "deploy-prod"]
    assert [j.stage for j in raw.jobs] == ["build", "test", "test", "deploy"]


def test_default_before_script_is_inherited(gitlab_config):
    build = _jobs(gitlab.parse(gitlab_config))["build-job"]
    assert [s.name for s in build.steps] == ["before_script", "script"]
    assert build.steps[0].commands == ('echo "setup"',)
    assert build.steps[1].commands == ("npm ci", "npm run build")


def test_manual_rule_and_condition(gitlab_config):
    jobs = _jobs(gitlab.parse(gitlab_config))
    deploy = jobs["deploy-prod"]
    assert deploy.manual is True
    assert deploy.condition == '$CI_COMMIT_BRANCH == "main"'
    assert jobs["lint"].allow_failure is True
    assert jobs["unit-test"].manual is False


def test_default_stages_and_job_stage():
    raw = gitlab.parse("compile:\n  stage: build\n  script: make\nunit:\n  script: make test\n")
    assert raw.stage_order == (".pre", "build", "test", "deploy", ".post")
    assert _jobs(raw)["unit"].stage == "test"


def test_repeated_stage_names_are_declared_once():
    raw = gitlab.parse("stages: [build, test, build]\ncompile:\n  stage: build\n  script: make\n")
    assert raw.stage_order == (".pre", "build", "test", ".post")


def test_extends_chain_is_merged():
    content = textwrap.dedent(
        """\
        .base:
          stage: test
          script:
            - make base
        .py:
          extends: .base
          before_script:
            - pip install -e .
        pytest:
          extends: .py
          script:
            - pytest
        """
    )
    job = _jobs(gitlab.parse(content))["pytest"]
    assert job.stage == "test"
    assert [s.commands for s in job.steps] == [("pip install -e .",), ("pytest",)]


def test_circular_extends():
    content = "a:\n  extends: b\n  script: x\nb:\n  extends: a\n  script: y\n"
    with pytest.raises(PipelineSyntaxError) as exc:
        gitlab.parse(content)
    assert "circular" in exc.value.message


def test_extends_unknown_template():
    with pytest.raises(PipelineSyntaxError) as exc:
        gitlab.parse("job:\n  extends: .nope\n  script: x\n")
    assert exc.value.line == 2
    assert ".nope" in exc.value.message


def test_undeclared_stage():
    content = "stages: [build]\njob:\n  stage: release\n  script: x\n"
    with pytest.raises(PipelineSyntaxError) as exc:
        gitlab.parse(content)
    assert exc.value.line == 3
    assert "release" in exc.value.message


def test_job_without_script():
    with pytest.raises(PipelineSyntaxError) as exc:
        gitlab.parse("stages: [build]\njob:\n  stage: build\n")
    assert "no 'script'" in exc.value.message


def test_trigger_job():
    content = "bridge:\n  trigger:\n    project: group/downstream\n"
    job = gitlab.parse(content).jobs[0]
    assert job.steps[0].name == "trigger"
    assert job.steps[0].commands == ("trigger: group/downstream",)


def test_only_hidden_jobs():
    with pytest.raises(PipelineSyntaxError) as exc:
        gitlab.parse("stages: [build]\n.template:\n  script: x\n")
    assert "no jobs" in exc.value.message


def test_parallel_count():
    job = gitlab.parse("rspec:\n  script: rspec\n  parallel: 3\n").jobs[0]
    assert job.matrix == (
        (("#", "1/3"),),
        (("#", "2/3"),),
        (("#", "3/3"),),
    )


def test_parallel_matrix():
    content = textwrap.dedent(
        """\
        deploy:
          stage: deploy
          script: ./deploy.sh
          parallel:
            matrix:
              - PROVIDER: [aws, gcp]
                REGION: eu
        """
    )
    job = gitlab.parse(content).jobs[0]
    assert job.matrix == (
        (("PROVIDER", "aws"), ("REGION", "eu")),
        (("PROVIDER", "gcp"), ("REGION", "eu")),
    )


def test_needs_forms():
    content = textwrap.dedent(
        """\
        build:
          stage: build
          script: make
        test:
          script: make test
          needs:
            - build
            - job: build
              artifacts: false
            - project: group/other
              job: lib
              ref: main
        """
    )
    assert _jobs(gitlab.parse(content))["test"].needs == ("build", "build")


def test_only_except_condition():
    content = "job:\n  script: x\n  only:\n    - main\n    - tags\n  except:\n    refs: [schedules]\n"
    job = gitlab.parse(content).jobs[0]
    assert job.condition == "only: main, tags; except: schedules"


def test_includes_are_recorded():
    content = "include:\n  - local: ci/lint.yml\n  - template: Jobs/SAST.gitlab-ci.yml\njob:\n  script: x\n"
    raw = gitlab.parse(content)
    assert raw.includes == ("ci/lint.yml", "Jobs/SAST.gitlab-ci.yml")


def test_reference_tag_is_unsupported():
    content = textwrap.dedent(
        """\
        .setup:
          script:
            - make setup
        job:
          script:
            - !reference [.setup, script]
            - make
        """
    )
    with pytest.raises(UnsupportedFeature) as exc:
        gitlab.parse(content)
    assert "!reference" in exc.value.feature


def test_job_must_be_mapping():
    with pytest.raises(PipelineSyntaxError):
        gitlab.parse("stages: [build]\njob: echo hi\n")
