"""
fusion_config.py - 추적 환경 설정 모델

YAML 설정 문서를 엔티티/센서/마커/옵션 구조로 변환합니다.
로드 이후에는 불변 스냅샷으로 취급되어 여러 소비자가 잠금 없이 공유합니다.

문서 구조:
    entities:
      - entity: robot_a
        filterAlpha: 0.1
        sensors:
          - sensor: cam0
            topic: /cam0/markers
            type: MarkerBased        # 또는 NonMarkerBased
            sigma: 1.0
            target: robot_b
            transform: {rot: [0, 0, 0, 1], origin: [0.1, 0, 0]}
        markers:
          - marker: 3
            transform: {rot: [90, 0, 0]}   # Yaw-Pitch-Roll (도)
    options:
      loopRate: 60.0
      decayDuration: 0.25
      ...

선택 필드는 모두 기본값으로 대체되며 (경고 로그 + 진단 기록),
문서 자체를 파싱할 수 없는 경우에만 MalformedDocument가 발생합니다.

Version: 1.0
Author: FurSys AI Team
"""

import copy
import yaml
from pathlib import Path
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple, Union
import logging

from ..errors import FieldOutOfRange, MalformedDocument
from ..geometry.transform import Quaternion, Transform

logger = logging.getLogger(__name__)

UNDEFINED_NAME = "undefined"
UNDEFINED_MARKER_ID = -1


class SensorType(Enum):
    """센서 종류"""
    MARKER_BASED = "MarkerBased"        # 마커를 관측하는 센서 (카메라 등)
    NON_MARKER_BASED = "NonMarkerBased"  # 대상 자세를 직접 보고하는 센서


@dataclass(frozen=True)
class Sensor:
    """
    센서 설정

    Attributes:
        name: 센서 이름
        topic: 관측 채널 식별자
        type: 센서 종류
        sigma: 노이즈 (작을수록 신뢰도 높음, 가중치 1/sigma²)
        target: 관측 대상 엔티티 이름
        calibration: 센서 좌표계 -> 대상 좌표계 변환
    """
    name: str = UNDEFINED_NAME
    topic: str = UNDEFINED_NAME
    type: SensorType = SensorType.MARKER_BASED
    sigma: float = 1.0
    target: str = UNDEFINED_NAME
    calibration: Transform = field(default_factory=Transform.identity)

    @property
    def weight(self) -> float:
        """역분산 가중치"""
        return 1.0 / (self.sigma ** 2)


@dataclass(frozen=True)
class Marker:
    """
    마커 설정

    Attributes:
        id: 마커 ID (-1 은 미지정, 융합에 사용하지 않음)
        calibration: 마커 좌표계 -> 엔티티 좌표계 변환
    """
    id: int = UNDEFINED_MARKER_ID
    calibration: Transform = field(default_factory=Transform.identity)

    @property
    def is_valid(self) -> bool:
        return self.id >= 0


@dataclass(frozen=True)
class Entity:
    """
    추적 대상 엔티티

    센서와 마커는 엔티티가 독점 소유합니다.
    """
    name: str = UNDEFINED_NAME
    filter_alpha: float = 0.1  # 감쇠 계수 (클수록 오래된 샘플을 빨리 잊음)
    sensors: Tuple[Sensor, ...] = ()
    markers: Tuple[Marker, ...] = ()

    def find_sensor(self, name: str) -> Optional[Sensor]:
        """이름으로 센서 검색"""
        for sensor in self.sensors:
            if sensor.name == name:
                return sensor
        return None

    def find_marker(self, marker_id: int) -> Optional[Marker]:
        """ID로 유효한 마커 검색 (-1 은 항상 None)"""
        if marker_id == UNDEFINED_MARKER_ID:
            return None
        for marker in self.markers:
            if marker.is_valid and marker.id == marker_id:
                return marker
        return None


@dataclass(frozen=True)
class Options:
    """전역 옵션"""
    dbg_graph_filename: str = ""
    dbg_graph_interval: float = 0.0   # 초
    loop_rate: float = 60.0           # Hz
    decay_duration: float = 0.25      # 초

    # 퍼블리시 토글
    publish_markers: bool = True
    publish_world_sensors: bool = True
    publish_entity_sensors: bool = True
    publish_pose_topics: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """설정 문서 형식 딕셔너리"""
        return {
            'dbgDumpGraphFilename': self.dbg_graph_filename,
            'dbgDumpGraphInterval': self.dbg_graph_interval,
            'loopRate': self.loop_rate,
            'decayDuration': self.decay_duration,
            'publishMarkers': self.publish_markers,
            'publishWorldSensors': self.publish_world_sensors,
            'publishEntitySensors': self.publish_entity_sensors,
            'publishPoseTopics': self.publish_pose_topics
        }


# 문서 키 -> (Options 필드, 타입)
_OPTION_KEYS = {
    'dbgDumpGraphFilename': ('dbg_graph_filename', str),
    'dbgDumpGraphInterval': ('dbg_graph_interval', float),
    'loopRate': ('loop_rate', float),
    'decayDuration': ('decay_duration', float),
    'publishMarkers': ('publish_markers', bool),
    'publishWorldSensors': ('publish_world_sensors', bool),
    'publishEntitySensors': ('publish_entity_sensors', bool),
    'publishPoseTopics': ('publish_pose_topics', bool),
}


Diagnostics = Optional[List[FieldOutOfRange]]


def _report(diagnostics: Diagnostics, path: str, message: str):
    """필드 오류 기록 (경고 로그 + 진단 목록)"""
    logger.warning(f"Config: {path}: {message}")
    if diagnostics is not None:
        diagnostics.append(FieldOutOfRange(path, message))


def _get_str(node: Dict, key: str, default: str, diagnostics: Diagnostics, path: str) -> str:
    value = node.get(key)
    if value is None:
        return default
    if isinstance(value, (str, int, float)):
        return str(value)
    _report(diagnostics, f"{path}.{key}", f"expected a string, got {type(value).__name__}. Default is '{default}'")
    return default


def _get_float(node: Dict, key: str, default: float, diagnostics: Diagnostics, path: str) -> float:
    value = node.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        try:
            return float(value)
        except (TypeError, ValueError):
            pass
    _report(diagnostics, f"{path}.{key}", f"expected a number, got {value!r}. Default is {default}")
    return default


def _get_bool(node: Dict, key: str, default: bool, diagnostics: Diagnostics, path: str) -> bool:
    value = node.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    _report(diagnostics, f"{path}.{key}", f"expected a bool, got {value!r}. Default is {default}")
    return default


def _get_int(node: Dict, key: str, default: int, diagnostics: Diagnostics, path: str) -> int:
    value = node.get(key)
    if value is None:
        return default
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    _report(diagnostics, f"{path}.{key}", f"expected an integer, got {value!r}. Default is {default}")
    return default


def _get_list(node: Dict, key: str, diagnostics: Diagnostics, path: str) -> List[Any]:
    value = node.get(key)
    if value is None:
        return []
    if isinstance(value, list):
        return value
    _report(diagnostics, f"{path}.{key}", f"expected a sequence, got {type(value).__name__}. Default is []")
    return []


def _as_numbers(values: List[Any]) -> Optional[List[float]]:
    numbers = []
    for v in values:
        if isinstance(v, bool):
            return None
        try:
            numbers.append(float(v))
        except (TypeError, ValueError):
            return None
    return numbers


def parse_sensor_type(value: Any, diagnostics: Diagnostics = None, path: str = "type") -> SensorType:
    """
    센서 종류 문자열 파싱

    알 수 없는 문자열은 오류 없이 MarkerBased로 대체합니다 (기존 동작 유지).

    Args:
        value: 'MarkerBased' 또는 'NonMarkerBased'
        diagnostics: 진단 목록 (대체 시 기록)
        path: 진단용 필드 경로

    Returns:
        SensorType
    """
    if value is None:
        return SensorType.MARKER_BASED
    if value == SensorType.MARKER_BASED.value:
        return SensorType.MARKER_BASED
    if value == SensorType.NON_MARKER_BASED.value:
        return SensorType.NON_MARKER_BASED

    # 대체 분기: 미등록 종류 -> MarkerBased
    _report(diagnostics, path, f"unknown sensor type {value!r}. Default is MarkerBased")
    return SensorType.MARKER_BASED


def parse_transform(
    node: Any,
    diagnostics: Diagnostics = None,
    path: str = "transform"
) -> Transform:
    """
    변환 노드 파싱

    rot:
        - 4개: 쿼터니언 (x, y, z, w)
        - 3개: Yaw-Pitch-Roll (도 단위, 라디안으로 변환 후 적용)
        - 없음/빈 값: 단위 회전
        - 그 외: 경고 후 단위 회전
    origin:
        - 3개: (x, y, z)
        - 없음/빈 값: 원점
        - 그 외: 경고 후 원점

    Args:
        node: {'rot': [...], 'origin': [...]} 형식 노드 (None 허용)
        diagnostics: 진단 목록
        path: 진단용 필드 경로

    Returns:
        Transform
    """
    if node is None:
        return Transform.identity()
    if not isinstance(node, dict):
        _report(diagnostics, path, f"expected a mapping, got {type(node).__name__}. Default is identity")
        return Transform.identity()

    # 회전 파싱
    rot = Quaternion.identity()
    rot_node = node.get('rot')
    rot_values = [] if rot_node is None else rot_node
    if not isinstance(rot_values, list):
        _report(diagnostics, f"{path}.rot", f"expected a sequence, got {rot_values!r}. Default is {{0,0,0,1}}")
    elif len(rot_values) in (3, 4):
        numbers = _as_numbers(rot_values)
        if numbers is None:
            _report(diagnostics, f"{path}.rot", f"non-numeric element in {rot_values!r}. Default is {{0,0,0,1}}")
        elif len(numbers) == 4:
            quat = Quaternion.from_array(numbers)
            if quat.is_degenerate:
                _report(diagnostics, f"{path}.rot", "zero-length quaternion. Default is {0,0,0,1}")
            else:
                rot = quat.normalize()
        else:
            yaw, pitch, roll = numbers
            rot = Quaternion.from_ypr(yaw, pitch, roll, degrees=True)
    elif len(rot_values) != 0:
        _report(
            diagnostics, f"{path}.rot",
            f"expected either 3 elements (YPR) or 4 elements (quaternion), got {len(rot_values)}. "
            f"Default is {{0,0,0,1}}"
        )

    # 위치 파싱
    origin = [0.0, 0.0, 0.0]
    origin_node = node.get('origin')
    origin_values = [] if origin_node is None else origin_node
    if not isinstance(origin_values, list):
        _report(diagnostics, f"{path}.origin", f"expected a sequence, got {origin_values!r}. Default is {{0,0,0}}")
    elif len(origin_values) == 3:
        numbers = _as_numbers(origin_values)
        if numbers is None:
            _report(diagnostics, f"{path}.origin", f"non-numeric element in {origin_values!r}. Default is {{0,0,0}}")
        else:
            origin = numbers
    elif len(origin_values) != 0:
        _report(
            diagnostics, f"{path}.origin",
            f"expected 3 elements, got {len(origin_values)}. Default is {{0,0,0}}"
        )

    return Transform(rotation=rot, translation=origin)


def _parse_sensor(node: Any, diagnostics: Diagnostics, path: str) -> Sensor:
    if not isinstance(node, dict):
        _report(diagnostics, path, f"expected a mapping, got {type(node).__name__}. Using defaults")
        node = {}

    sigma = _get_float(node, 'sigma', 1.0, diagnostics, path)
    if not sigma > 0:
        _report(diagnostics, f"{path}.sigma", f"must be > 0, got {sigma}. Default is 1.0")
        sigma = 1.0

    return Sensor(
        name=_get_str(node, 'sensor', UNDEFINED_NAME, diagnostics, path),
        topic=_get_str(node, 'topic', UNDEFINED_NAME, diagnostics, path),
        type=parse_sensor_type(node.get('type'), diagnostics, f"{path}.type"),
        sigma=sigma,
        target=_get_str(node, 'target', UNDEFINED_NAME, diagnostics, path),
        calibration=parse_transform(node.get('transform'), diagnostics, f"{path}.transform")
    )


def _parse_marker(node: Any, diagnostics: Diagnostics, path: str) -> Marker:
    if not isinstance(node, dict):
        _report(diagnostics, path, f"expected a mapping, got {type(node).__name__}. Using defaults")
        node = {}

    marker_id = _get_int(node, 'marker', UNDEFINED_MARKER_ID, diagnostics, path)
    if marker_id < UNDEFINED_MARKER_ID:
        _report(diagnostics, f"{path}.marker", f"negative marker id {marker_id}. Default is -1")
        marker_id = UNDEFINED_MARKER_ID

    return Marker(
        id=marker_id,
        calibration=parse_transform(node.get('transform'), diagnostics, f"{path}.transform")
    )


def _parse_entity(node: Any, diagnostics: Diagnostics, path: str) -> Entity:
    if not isinstance(node, dict):
        _report(diagnostics, path, f"expected a mapping, got {type(node).__name__}. Using defaults")
        node = {}

    name = _get_str(node, 'entity', UNDEFINED_NAME, diagnostics, path)

    alpha = _get_float(node, 'filterAlpha', 0.1, diagnostics, path)
    if not 0.0 < alpha <= 1.0:
        _report(diagnostics, f"{path}.filterAlpha", f"must be in (0, 1], got {alpha}. Default is 0.1")
        alpha = 0.1

    sensors = tuple(
        _parse_sensor(sensor, diagnostics, f"{path}.sensors[{i}]")
        for i, sensor in enumerate(_get_list(node, 'sensors', diagnostics, path))
    )
    markers = tuple(
        _parse_marker(marker, diagnostics, f"{path}.markers[{i}]")
        for i, marker in enumerate(_get_list(node, 'markers', diagnostics, path))
    )

    return Entity(name=name, filter_alpha=alpha, sensors=sensors, markers=markers)


def _parse_options(node: Any, diagnostics: Diagnostics) -> Options:
    if not isinstance(node, dict):
        _report(diagnostics, "options", f"expected a mapping, got {type(node).__name__}. Using defaults")
        return Options()

    defaults = Options()
    values = {}
    for key, (attr, kind) in _OPTION_KEYS.items():
        default = getattr(defaults, attr)
        if kind is bool:
            values[attr] = _get_bool(node, key, default, diagnostics, "options")
        elif kind is float:
            values[attr] = _get_float(node, key, default, diagnostics, "options")
        else:
            values[attr] = _get_str(node, key, default, diagnostics, "options")

    return Options(**values)


class ConfigurationModel:
    """
    추적 환경 설정 (불변 스냅샷)

    엔티티 목록과 전역 옵션을 보관합니다.
    접근자는 독립된 복사본을 반환하므로 호출자가 모델을 변경할 수 없습니다.

    Example:
        >>> model = load_config("config/atlas.yaml")
        >>> for entity in model.entities():
        ...     print(entity.name, len(entity.sensors))
        >>> print(model.dump())
    """

    def __init__(
        self,
        entities: Tuple[Entity, ...] = (),
        options: Optional[Options] = None,
        diagnostics: Tuple[FieldOutOfRange, ...] = ()
    ):
        self._entities = tuple(entities)
        self._options = options if options is not None else Options()
        self._diagnostics = tuple(diagnostics)

    @classmethod
    def from_dict(cls, root: Any) -> 'ConfigurationModel':
        """
        파싱된 문서 트리에서 모델 생성

        Args:
            root: yaml.safe_load 결과 (None 은 빈 문서)

        Raises:
            MalformedDocument: 루트가 매핑이 아닌 경우
        """
        diagnostics: List[FieldOutOfRange] = []

        if root is None:
            logger.error("Config: Document is empty")
            root = {}
        if not isinstance(root, dict):
            raise MalformedDocument(
                f"Config: document root must be a mapping, got {type(root).__name__}"
            )

        # 구조 점검
        if 'entities' not in root:
            logger.warning("Config: Cannot find 'entities'")
        if 'options' not in root:
            logger.warning("Config: Cannot find 'options'")

        # 엔티티 로드
        entities = []
        seen = set()
        for i, node in enumerate(_get_list(root, 'entities', diagnostics, "config")):
            entity = _parse_entity(node, diagnostics, f"entities[{i}]")
            if entity.name in seen:
                _report(diagnostics, f"entities[{i}].entity", f"duplicate entity name '{entity.name}'")
            seen.add(entity.name)
            entities.append(entity)

        # 옵션 로드
        options_node = root.get('options')
        options = Options() if options_node is None else _parse_options(options_node, diagnostics)

        model = cls(entities=tuple(entities), options=options, diagnostics=tuple(diagnostics))
        logger.info(
            f"Config loaded: {len(entities)} entities, {len(diagnostics)} diagnostics"
        )
        return model

    def options(self) -> Options:
        """전역 옵션 (복사본)"""
        return replace(self._options)

    def entities(self) -> List[Entity]:
        """엔티티 목록 (복사본)"""
        return copy.deepcopy(list(self._entities))

    def entity(self, name: str) -> Entity:
        """이름으로 엔티티 조회 (복사본)"""
        for entity in self._entities:
            if entity.name == name:
                return copy.deepcopy(entity)
        raise KeyError(name)

    @property
    def entity_names(self) -> List[str]:
        return [entity.name for entity in self._entities]

    @property
    def diagnostics(self) -> Tuple[FieldOutOfRange, ...]:
        """파싱 중 기록된 필드 오류"""
        return self._diagnostics

    def to_dict(self) -> Dict[str, Any]:
        """설정 문서 형식 딕셔너리"""
        return {
            'entities': [
                {
                    'entity': entity.name,
                    'filterAlpha': entity.filter_alpha,
                    'sensors': [
                        {
                            'sensor': sensor.name,
                            'topic': sensor.topic,
                            'type': sensor.type.value,
                            'sigma': sensor.sigma,
                            'target': sensor.target,
                            'transform': sensor.calibration.to_dict()
                        }
                        for sensor in entity.sensors
                    ],
                    'markers': [
                        {
                            'marker': marker.id,
                            'transform': marker.calibration.to_dict()
                        }
                        for marker in entity.markers
                    ]
                }
                for entity in self._entities
            ],
            'options': self._options.to_dict()
        }

    def save(self, filepath: Union[str, Path]):
        """설정을 YAML 파일로 저장"""
        with open(filepath, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

        logger.info(f"Config saved to {filepath}")

    def dump(self) -> str:
        """사람이 읽을 수 있는 설정 요약 (디버그용)"""
        opts = self._options
        lines = [
            "",
            "=== CONFIG ===",
            "Options:",
            f"  loopRate: {opts.loop_rate}",
            f"  decayDuration: {opts.decay_duration}",
            f"  dbgGraphFilename: {opts.dbg_graph_filename}",
            f"  dbgGraphInterval: {opts.dbg_graph_interval}",
            f"  publishMarkers: {opts.publish_markers}",
            f"  publishWorldSensors: {opts.publish_world_sensors}",
            f"  publishEntitySensors: {opts.publish_entity_sensors}",
            f"  publishPoseTopics: {opts.publish_pose_topics}",
            "Entities:",
        ]

        for entity in self._entities:
            lines.append(f"  -{entity.name}")
            lines.append("    Sensors:")
            for sensor in entity.sensors:
                lines.append(f"      -{sensor.name}")
            lines.append("    Markers:")
            for marker in entity.markers:
                lines.append(f"      -ID:{marker.id}")

        lines.append("=== CONFIG END ===")
        return "\n".join(lines) + "\n"

    def __repr__(self) -> str:
        return f"ConfigurationModel(entities={self.entity_names})"


def load_config_from_string(text: str) -> ConfigurationModel:
    """
    YAML 문자열에서 설정 로드

    Raises:
        MalformedDocument: YAML 파싱 실패 또는 루트가 매핑이 아닌 경우
    """
    try:
        root = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MalformedDocument(f"Config: failed to parse YAML: {exc}") from exc

    return ConfigurationModel.from_dict(root)


def load_config(filepath: Union[str, Path]) -> ConfigurationModel:
    """
    YAML 파일에서 설정 로드

    Args:
        filepath: 설정 파일 경로

    Returns:
        ConfigurationModel: 로드된 설정

    Raises:
        MalformedDocument: 파일을 읽을 수 없거나 파싱할 수 없는 경우
    """
    path = Path(filepath)

    try:
        with open(path, 'r') as f:
            text = f.read()
    except OSError as exc:
        raise MalformedDocument(f"Config: cannot read {filepath}: {exc}") from exc

    logger.info(f"Loading config from {filepath}")
    return load_config_from_string(text)
