import textwrap

import pytest

from pipeviz.errors import PipelineSyntaxError, UnsupportedFeature
from pipeviz.model import PipelineFormat
from pipeviz.parsers import jenkins


def _pipeline(stages_body: str) -> str:
    body = textwrap.indent(textwrap.dedent(stages_body), " " * 8)
    return "pipeline {\n    agent any\n    stages {\n" + body + "    }\n}\n"


def test_tokenize_skips_comments_and_keeps_strings():
    tokens = jenkins.tokenize("// note\nsh 'a // b' /* block\ncomment */ echo \"x\\\"y\"\n")
    values = [(t.kind, t.value) for t in tokens if t.kind != "NEWLINE"]
    assert values == [("WORD", "sh"), ("STRING", "a // b"), ("WORD", "echo"), ("STRING", 'x"y')]
    echo = next(t for t in tokens if t.value == "echo")
    assert echo.line == 3


def test_unterminated_string():
    content = "pipeline {\n  stages {\n    stage('Build) {\n"
    with pytest.raises(PipelineSyntaxError) as exc:
        jenkins.parse(content)
    assert exc.value.line == 3


def test_unclosed_brace_reports_opener_line():
    with pytest.raises(PipelineSyntaxError) as exc:
        jenkins.parse("pipeline {\n  stages {\n")
    assert exc.value.line == 2


def test_stray_closing_brace():
    with pytest.raises(PipelineSyntaxError) as exc:
        jenkins.parse("pipeline {\n}\n}\n")
    assert exc.value.line == 3


def test_parse_stages_in_order(jenkinsfile):
    raw = jenkins.parse(jenkinsfile)

    assert raw.format is PipelineFormat.JENKINS
    assert raw.stage_order == ("Build", "Test", "Deploy")
    assert [j.name for j in raw.jobs] == ["Build", "Test", "Deploy"]
    assert raw.stage_conditions == (("Deploy", "branch 'main'"),)


def test_shell_steps(jenkinsfile):
    build, test, deploy = jenkins.parse(jenkinsfile).jobs

    assert build.steps[0].name == "make build"
    assert build.steps[0].commands == ("make build",)

    assert test.steps[0].name == "Unit tests"
    assert test.steps[0].commands == ("make test",)
    assert test.steps[1].name == "junit"
    assert test.steps[1].commands == ("junit 'reports/**/*.xml'",)

    assert deploy.steps[0].commands == ("./deploy.sh", "./smoke.sh")


def test_parallel_and_input(jenkinsfile_gated):
    raw = jenkins.parse(jenkinsfile_gated)
    jobs = {j.name: j for j in raw.jobs}

    assert raw.stage_order == ("Build", "Tests", "Release", "Notify")
    assert jobs["Unit"].stage == "Tests"
    assert jobs["Unit"].parallel and jobs["Integration"].parallel
    assert jobs["Release"].manual is True
    assert jobs["Release"].prompt == "Ship to production?"
    assert jobs["Notify"].steps[0].commands == ("echo 'done'",)


def test_input_step_inside_steps():
    content = _pipeline(
        """\
        stage('Promote') {
            steps {
                input message: 'Promote build?'
                sh './promote.sh'
            }
        }
        """
    )
    job = jenkins.parse(content).jobs[0]
    assert job.manual is True
    assert job.prompt == "Promote build?"
    assert [s.commands for s in job.steps] == [("./promote.sh",)]


def test_catch_error_marks_steps_tolerant():
    content = _pipeline(
        """\
        stage('Lint') {
            steps {
                catchError(buildResult: 'SUCCESS', stageResult: 'UNSTABLE') {
                    sh 'make lint'
                }
                sh 'make check'
            }
        }
        """
    )
    steps = jenkins.parse(content).jobs[0].steps
    assert [s.continue_on_failure for s in steps] == [True, False]


def test_multiline_call_arguments_stay_one_step():
    content = _pipeline(
        """\
        stage('Archive') {
            steps {
                archiveArtifacts(
                    artifacts: 'dist/**',
                    fingerprint: true
                )
            }
        }
        """
    )
    steps = jenkins.parse(content).jobs[0].steps
    assert len(steps) == 1
    assert steps[0].commands == ("archiveArtifacts( artifacts: 'dist/**', fingerprint: true )",)


def test_parallel_branch_when_becomes_job_condition():
    content = _pipeline(
        """\
        stage('Deploy') {
            parallel {
                stage('EU') {
                    when { branch 'main' }
                    steps { sh './deploy eu' }
                }
                stage('US') {
                    steps { sh './deploy us' }
                }
            }
        }
        """
    )
    eu, us = jenkins.parse(content).jobs
    assert eu.condition == "branch 'main'"
    assert us.condition is None


def test_script_block_becomes_single_step():
    content = _pipeline(
        """\
        stage('Build') {
            steps {
                script {
                    def v = readFile('VERSION')
                    echo "version ${v}"
                }
                sh 'make'
            }
        }
        """
    )
    steps = jenkins.parse(content).jobs[0].steps
    assert [s.name for s in steps] == ["script", "make"]
    assert steps[0].commands == ("def v = readFile('VERSION')", 'echo "version ${v}"')


def test_control_flow_inside_script_is_unsupported():
    content = _pipeline(
        """\
        stage('Build') {
            steps {
                script {
                    if (env.BRANCH_NAME == 'main') {
                        sh 'make release'
                    }
                }
            }
        }
        """
    )
    with pytest.raises(UnsupportedFeature) as exc:
        jenkins.parse(content)
    assert "'if'" in exc.value.feature
    assert exc.value.line == 7


def test_deeply_nested_blocks_are_rejected():
    content = "pipeline {\n" + "a {\n" * 3000 + "}\n" * 3000 + "}\n"
    with pytest.raises(PipelineSyntaxError) as exc:
        jenkins.parse(content)
    assert exc.value.line == jenkins.MAX_NESTING + 1
    assert "nested" in exc.value.message


def test_scripted_pipeline_is_unsupported():
    with pytest.raises(UnsupportedFeature) as exc:
        jenkins.parse("node {\n  stage('Build') {\n    sh 'make'\n  }\n}\n")
    assert "scripted pipeline" in exc.value.feature
    assert exc.value.line == 1


def test_control_flow_is_unsupported():
    content = _pipeline(
        """\
        stage('Build') {
            steps {
                if (env.X) {
                    sh 'make'
                }
            }
        }
        """
    )
    with pytest.raises(UnsupportedFeature) as exc:
        jenkins.parse(content)
    assert "'if'" in exc.value.feature


def test_matrix_stage_is_unsupported():
    content = _pipeline(
        """\
        stage('Matrix') {
            matrix {
                axes { axis { name 'OS'; values 'linux' } }
            }
        }
        """
    )
    with pytest.raises(UnsupportedFeature) as exc:
        jenkins.parse(content)
    assert exc.value.feature == "matrix stage"


def test_duplicate_stage_names():
    content = _pipeline(
        """\
        stage('Build') {
            steps { sh 'a' }
        }
        stage('Build') {
            steps { sh 'b' }
        }
        """
    )
    with pytest.raises(PipelineSyntaxError) as exc:
        jenkins.parse(content)
    assert exc.value.line == 7
    assert "first on line 4" in exc.value.message


def test_stage_without_steps():
    content = _pipeline(
        """\
        stage('Empty') {
            agent any
        }
        """
    )
    with pytest.raises(PipelineSyntaxError) as exc:
        jenkins.parse(content)
    assert "no steps" in exc.value.message


def test_missing_pipeline_block():
    with pytest.raises(PipelineSyntaxError) as exc:
        jenkins.parse("echo 'hello'\n")
    assert exc.value.line == 1
