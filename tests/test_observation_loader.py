"""
ObservationLoader 단위 테스트
"""

import numpy as np
import pytest

from atlas_fusion.errors import InvalidSample
from atlas_fusion.input.observation_loader import ObservationLoader, parse_source


CSV_TEXT = """timestamp,entity,source,x,y,z,qx,qy,qz,qw,weight
0.2,robot_b,cam0,1.0,0.0,0.0,0,0,0,1,2.0
0.1,robot_b,7,0.5,0.5,0.0,0,0,0,1,
0.2,robot_a,mocap,0.0,1.0,0.0,0,0,0.7071068,0.7071068,1.0
0.3,robot_a,1,0.0,0.0,0.0,0,0,0,0,1.0
"""


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "session.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    return path


class TestParseSource:

    def test_marker_id(self):
        assert parse_source("7") == 7
        assert parse_source(" -1 ") == -1

    def test_sensor_name(self):
        assert parse_source("cam0") == "cam0"
        assert parse_source("7a") == "7a"


class TestObservationLoader:

    def test_sorted_by_timestamp(self, csv_file):
        loader = ObservationLoader(csv_file)
        assert len(loader) == 4
        assert [loader.load_observation(i).timestamp for i in range(3)] == pytest.approx([0.1, 0.2, 0.2])
        # 같은 시각은 파일 순서 유지
        assert loader.load_observation(1).source == "cam0"
        assert loader.load_observation(2).source == "mocap"

    def test_marker_observation(self, csv_file):
        obs = ObservationLoader(csv_file).load_observation(0)
        assert obs.entity == "robot_b"
        assert obs.source == 7
        assert obs.is_marker
        # 빈 weight 는 1.0
        assert obs.weight == 1.0
        np.testing.assert_allclose(obs.transform.translation, [0.5, 0.5, 0.0])

    def test_sensor_observation(self, csv_file):
        obs = ObservationLoader(csv_file).load_observation(1)
        assert not obs.is_marker
        assert obs.weight == 2.0

    def test_degenerate_row(self, csv_file):
        loader = ObservationLoader(csv_file)
        with pytest.raises(InvalidSample):
            loader.load_observation(3)

    def test_entities_and_time_range(self, csv_file):
        loader = ObservationLoader(csv_file)
        assert loader.entities == ["robot_a", "robot_b"]
        assert loader.time_range == pytest.approx((0.1, 0.3))

    def test_weight_column_optional(self, tmp_path):
        path = tmp_path / "no_weight.csv"
        path.write_text(
            "timestamp,entity,source,x,y,z,qx,qy,qz,qw\n"
            "0.0,robot_b,8,0,0,0,0,0,0,1\n",
            encoding="utf-8"
        )
        obs = next(iter(ObservationLoader(path)))
        assert obs.weight == 1.0
        assert obs.source == 8

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ObservationLoader(tmp_path / "nope.csv")

    def test_missing_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("timestamp,entity,x\n0.0,robot_b,1.0\n", encoding="utf-8")
        with pytest.raises(ValueError):
            ObservationLoader(path)

    def test_non_numeric_weight_row_rejected(self, tmp_path):
        path = tmp_path / "bad_weight.csv"
        path.write_text(
            "timestamp,entity,source,x,y,z,qx,qy,qz,qw,weight\n"
            "0.0,robot_b,7,0,0,0,0,0,0,1,1.0\n"
            "0.1,robot_b,7,0,0,0,0,0,0,1,abc\n"
            "0.2,robot_b,7,0,0,0,0,0,0,1,\n",
            encoding="utf-8"
        )
        loader = ObservationLoader(path)
        assert loader.load_observation(0).weight == 1.0
        with pytest.raises(InvalidSample):
            loader.load_observation(1)
        # 빈 weight 는 여전히 기본값
        assert loader.load_observation(2).weight == 1.0

    def test_non_numeric_coordinate_row_rejected(self, tmp_path):
        path = tmp_path / "bad_x.csv"
        path.write_text(
            "timestamp,entity,source,x,y,z,qx,qy,qz,qw\n"
            "0.0,robot_b,7,oops,0,0,0,0,0,1\n",
            encoding="utf-8"
        )
        with pytest.raises(InvalidSample):
            ObservationLoader(path).load_observation(0)

    def test_numeric_order_with_bad_timestamp(self, tmp_path):
        path = tmp_path / "bad_time.csv"
        path.write_text(
            "timestamp,entity,source,x,y,z,qx,qy,qz,qw\n"
            "2.0,robot_b,7,2,0,0,0,0,0,1\n"
            "10.0,robot_b,7,10,0,0,0,0,0,1\n"
            "oops,robot_b,7,0,0,0,0,0,0,1\n",
            encoding="utf-8"
        )
        loader = ObservationLoader(path)
        assert loader.load_observation(0).timestamp == 2.0
        assert loader.load_observation(1).timestamp == 10.0
        # 시각이 없는 행은 마지막으로 정렬되고 로드 시 거부
        with pytest.raises(InvalidSample):
            loader.load_observation(2)
        assert loader.time_range == (2.0, 10.0)
