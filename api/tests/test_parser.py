"""Tests for pipeline parser."""

import os

import pytest
from api.src.services.pipeline_parser import (
    parse_pipeline_config,
    parse_pipeline_dict,
    should_trigger,
    branch_matches,
    PipelineConfigError,
)

EXAMPLE_PIPELINE = os.path.join(
    os.path.dirname(__file__), "..", "..", "pipelines", "deploy-eks.yml"
)

def test_valid_pipeline():
    config = """
name: Test Pipeline
stages:
  - name: Build
    steps:
      - name: Install
        run:
          - npm install
          - npm run build
  - name: Deploy
    branches: [main]
    steps:
      - name: Upgrade
        uses: helm/upgrade-install
        with:
          release: app
          chart: ./chart
"""
    result = parse_pipeline_config(config, ["main"])
    assert result["name"] == "Test Pipeline"
    assert result["trigger_branches"] == ["main"]
    assert len(result["stages"]) == 2
    assert result["stages"][0]["steps"][0]["run"] == ["npm install", "npm run build"]
    assert result["stages"][0]["branches"] == []
    assert result["stages"][1]["branches"] == ["main"]
    assert result["stages"][1]["steps"][0]["uses"] == "helm/upgrade-install"
    assert result["stages"][1]["steps"][0]["timeout"] == 600

def test_example_pipeline_is_valid():
    with open(EXAMPLE_PIPELINE) as f:
        result = parse_pipeline_config(f.read())

    assert result["trigger_branches"] == ["main"]
    assert [s["name"] for s in result["stages"]] == ["Checkout", "Build & Push", "Deploy"]
    assert result["stages"][2]["branches"] == ["main", "develop"]
    assert result["stages"][2]["credentials"][0]["id"] == "aws-cred"
    assert result["notifications"]["failure"] == "Deployment failed!"

def test_trigger_branches_in_file_win_over_default():
    config = """
trigger:
  branches: [release/*]
stages:
  - name: Build
    steps:
      - name: Echo
        run: echo hi
"""
    result = parse_pipeline_config(config, ["main"])
    assert result["trigger_branches"] == ["release/*"]
    assert should_trigger(result, "release/1.2")
    assert not should_trigger(result, "main")

def test_should_trigger_only_configured_branch():
    config = {"stages": [{"name": "S", "steps": [{"name": "x", "run": "true"}]}]}
    result = parse_pipeline_dict(config, ["main"])

    assert should_trigger(result, "main")
    for branch in ["develop", "feature-x", "mainline", "Main"]:
        assert not should_trigger(result, branch)

def test_branch_matches_empty_filter():
    assert branch_matches("anything", [])

def test_missing_stages():
    config = """
name: Bad Pipeline
"""
    with pytest.raises(PipelineConfigError, match="must have 'stages'"):
        parse_pipeline_config(config)

def test_stage_without_steps():
    config = """
stages:
  - name: Build
    steps: []
"""
    with pytest.raises(PipelineConfigError, match="Stage 0 must have a non-empty 'steps'"):
        parse_pipeline_config(config)

def test_missing_step_name():
    config = """
stages:
  - name: Build
    steps:
      - run: npm install
"""
    with pytest.raises(PipelineConfigError, match="missing 'name'"):
        parse_pipeline_config(config)

def test_step_needs_run_or_uses():
    config = """
stages:
  - name: Build
    steps:
      - name: Nothing
"""
    with pytest.raises(PipelineConfigError, match="exactly one of 'run' or 'uses'"):
        parse_pipeline_config(config)

def test_unknown_action():
    config = """
stages:
  - name: Build
    steps:
      - name: Mystery
        uses: kaniko/build
"""
    with pytest.raises(PipelineConfigError, match="unknown action 'kaniko/build'"):
        parse_pipeline_config(config)

def test_credential_binding_needs_id():
    config = """
stages:
  - name: Build
    credentials:
      - username_variable: USER
    steps:
      - name: Echo
        run: echo hi
"""
    with pytest.raises(PipelineConfigError, match="needs a string 'id'"):
        parse_pipeline_config(config)

def test_invalid_timeout():
    config = {
        "stages": [{"name": "S", "steps": [{"name": "x", "run": "true", "timeout": 0}]}]
    }
    with pytest.raises(PipelineConfigError, match="'timeout' must be a positive integer"):
        parse_pipeline_dict(config)

def test_env_values_become_strings():
    config = {
        "env": {"REPLICAS": 3, "DEBUG": True},
        "stages": [{"name": "S", "steps": [{"name": "x", "run": "true"}]}],
    }
    result = parse_pipeline_dict(config)
    assert result["env"] == {"REPLICAS": "3", "DEBUG": "true"}

def test_empty_config():
    with pytest.raises(PipelineConfigError, match="Empty"):
        parse_pipeline_config("")

def test_invalid_yaml():
    with pytest.raises(PipelineConfigError, match="Invalid YAML"):
        parse_pipeline_config("stages: [unclosed")
