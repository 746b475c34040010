"""
공용 테스트 fixture
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parents[1]))

import pytest

from atlas_fusion.config.fusion_config import load_config_from_string


SAMPLE_YAML = """
entities:
  - entity: robot_a
    filterAlpha: 0.5
    sensors:
      - sensor: cam0
        topic: /robot_a/cam0/markers
        type: MarkerBased
        sigma: 0.5
        target: robot_b
        transform:
          rot: [0, 0, 0, 1]
          origin: [0.1, 0.0, 0.2]
      - sensor: mocap
        topic: /mocap/robot_a
        type: NonMarkerBased
        sigma: 2.0
        target: robot_a
    markers:
      - marker: 1
        transform:
          rot: [90, 0, 0]
          origin: [0.0, 0.0, 0.1]
  - entity: robot_b
    sensors: []
    markers:
      - marker: 7
      - marker: 8
        transform:
          origin: [0.0, 0.1, 0.0]
options:
  dbgDumpGraphFilename: graph.dot
  dbgDumpGraphInterval: 5
  loopRate: 30.0
  decayDuration: 0.5
  publishMarkers: false
  publishWorldSensors: true
  publishEntitySensors: false
  publishPoseTopics: true
"""


@pytest.fixture
def sample_yaml():
    return SAMPLE_YAML


@pytest.fixture
def sample_config():
    return load_config_from_string(SAMPLE_YAML)


@pytest.fixture
def sample_config_file(tmp_path):
    path = tmp_path / "atlas.yaml"
    path.write_text(SAMPLE_YAML, encoding="utf-8")
    return path
