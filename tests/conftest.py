import textwrap

import pytest

GITHUB_WORKFLOW = textwrap.dedent(
    """\
    name: CI
    on: [push]
    jobs:
      build:
        runs-on: ubuntu-latest
        steps:
          - uses: actions/checkout@v4
          - name: Install
            run: npm ci
          - name: Build
            run: |
              npm run lint
              npm run build
      test:
        needs: build
        runs-on: ubuntu-latest
        strategy:
          matrix:
            node: [18, 20]
        steps:
          - run: npm test
      deploy:
        needs: [test]
        if: github.ref == 'refs/heads/main'
        runs-on: ubuntu-latest
        steps:
          - run: ./deploy.sh
            continue-on-error: true
    """
)

GITLAB_CONFIG = textwrap.dedent(
    """\
    stages:
      - build
      - test
      - deploy

    default:
      before_script:
        - echo "setup"

    .node:
      image: node:20

    build-job:
      stage: build
      extends: .node
      script:
        - npm ci
        - npm run build

    unit-test:
      stage: test
      script: npm test

    lint:
      stage: test
      script:
        - npm run lint
      allow_failure: true

    deploy-prod:
      stage: deploy
      script:
        - ./deploy.sh production
      rules:
        - if: $CI_COMMIT_BRANCH == "main"
          when: manual
    """
)

JENKINSFILE = textwrap.dedent(
    """\
    pipeline {
        agent any
        stages {
            stage('Build') {
                steps {
                    sh 'make build'
                }
            }
            stage('Test') {
                steps {
                    sh label: 'Unit tests', script: 'make test'
                    junit 'reports/**/*.xml'
                }
            }
            stage('Deploy') {
                when { branch 'main' }
                steps {
                    sh '''
                        ./deploy.sh
                        ./smoke.sh
                    '''
                }
            }
        }
    }
    """
)

JENKINSFILE_GATED = textwrap.dedent(
    """\
    // release pipeline
    pipeline {
        agent any
        stages {
            stage('Build') {
                steps { sh 'make' }
            }
            stage('Tests') {
                parallel {
                    stage('Unit') {
                        steps { sh 'make unit' }
                    }
                    stage('Integration') {
                        steps { sh 'make integration' }
                    }
                }
            }
            stage('Release') {
                input {
                    message "Ship to production?"
                }
                steps {
                    sh "./release.sh"
                }
            }
            stage('Notify') {
                steps { echo 'done' }
            }
        }
    }
    """
)


@pytest.fixture
def github_workflow():
    return GITHUB_WORKFLOW


@pytest.fixture
def gitlab_config():
    return GITLAB_CONFIG


@pytest.fixture
def jenkinsfile():
    return JENKINSFILE


@pytest.fixture
def jenkinsfile_gated():
    return JENKINSFILE_GATED
