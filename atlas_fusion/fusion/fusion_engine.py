"""
fusion_engine.py - 엔티티별 자세 융합 엔진

여러 센서/마커 관측을 엔티티별 합의 자세로 결합합니다.

처리 흐름:
    관측 (entity, sensor|marker, transform, weight, timestamp)
      -> 보정 변환 적용 (transform * calibration)
      -> 센서 가중치 적용 (weight / sigma²)
      -> 시간 감쇠 (기존 상태 * exp(-alpha * dt))
      -> 누적기에 추가
      -> 합의 자세

동시성:
- 엔티티마다 누적기를 독점 소유 (엔티티 간 공유 상태 없음)
- 같은 엔티티에 대한 갱신은 엔티티별 Lock 으로 직렬화
- 엔진은 시계를 직접 읽지 않음 (모든 시간은 호출자가 전달)

Version: 1.0
Author: FurSys AI Team
"""

import math
import threading
import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
import logging

from ..config.fusion_config import (
    ConfigurationModel,
    Entity,
    Options,
    Sensor,
    UNDEFINED_MARKER_ID
)
from ..errors import InvalidSample, UnknownEntity
from ..geometry.transform import Transform
from .filters import (
    FusionMode,
    PoseAccumulator,
    create_accumulator,
    validate_sample
)

logger = logging.getLogger(__name__)

Source = Union[str, int]


def _check_timestamp(timestamp: float) -> float:
    try:
        ts = float(timestamp)
    except (TypeError, ValueError) as exc:
        raise InvalidSample(f"Timestamp must be a number, got {timestamp!r}") from exc
    if not np.isfinite(ts):
        raise InvalidSample(f"Timestamp must be finite, got {timestamp!r}")
    return ts


@dataclass
class EntityTrack:
    """
    엔티티 하나의 융합 상태

    Attributes:
        entity: 엔티티 설정
        accumulator: 누적기 (독점 소유)
        last_update: 마지막 갱신 시각 (초)
        sample_count: 누적된 샘플 수
    """
    entity: Entity
    accumulator: PoseAccumulator
    last_update: Optional[float] = None
    sample_count: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def decay_factor(self, timestamp: float) -> float:
        """
        감쇠 계수 exp(-alpha * dt)

        dt <= 0 (동시 또는 역순 도착) 이면 1.0 (감쇠 없음, 증폭 없음)
        """
        if self.last_update is None:
            return 1.0
        dt = timestamp - self.last_update
        if dt <= 0.0:
            return 1.0
        return math.exp(-self.entity.filter_alpha * dt)

    def add(self, sample: Transform, weight: float, timestamp: float) -> Transform:
        """
        감쇠 후 샘플 추가

        Raises:
            InvalidSample: 잘못된 가중치/시각 (상태 변경 없음)
        """
        w = validate_sample(sample, weight)
        timestamp = _check_timestamp(timestamp)

        with self._lock:
            factor = self.decay_factor(timestamp)
            if factor < 1.0:
                self.accumulator.scale(factor)
            self.accumulator.add(sample, w)

            if self.last_update is None or timestamp > self.last_update:
                self.last_update = timestamp
            self.sample_count += 1

            return self.accumulator.current_estimate()

    def estimate(self) -> Transform:
        with self._lock:
            return self.accumulator.current_estimate()

    def reset(self):
        with self._lock:
            self.accumulator.clear()
            self.last_update = None
            self.sample_count = 0


class FusionEngine:
    """
    엔티티별 자세 융합 엔진

    설정 모델의 엔티티마다 EntityTrack 을 생성하고,
    관측을 보정/가중하여 누적합니다.

    Example:
        >>> config = load_config("config/atlas.yaml")
        >>> engine = FusionEngine(config)
        >>> engine.observe("robot_b", "cam0", measured, weight=1.0, timestamp=t)
        >>> engine.observe("robot_b", 3, marker_pose, weight=0.5, timestamp=t)
        >>> pose = engine.current_estimate("robot_b")
    """

    def __init__(
        self,
        config: ConfigurationModel,
        options: Optional[Options] = None,
        mode: FusionMode = FusionMode.WEIGHTED_MEAN
    ):
        """
        Args:
            config: 설정 모델 (읽기 전용)
            options: 전역 옵션 (None 이면 config.options())
            mode: 누적 정책
        """
        self.mode = mode
        self.options = options if options is not None else config.options()

        self._tracks: Dict[str, EntityTrack] = {}
        # (대상 엔티티, 센서 이름) -> 센서
        self._sensors_by_target: Dict[Tuple[str, str], Sensor] = {}

        entities = config.entities()
        for entity in entities:
            if entity.name in self._tracks:
                logger.warning(f"Duplicate entity '{entity.name}' ignored by fusion engine")
                continue
            self._tracks[entity.name] = EntityTrack(
                entity=entity,
                accumulator=create_accumulator(mode)
            )

        for entity in entities:
            for sensor in entity.sensors:
                self._sensors_by_target.setdefault((sensor.target, sensor.name), sensor)

        logger.info(
            f"FusionEngine initialized: mode={mode.value}, entities={len(self._tracks)}, "
            f"decay_duration={self.options.decay_duration}"
        )

    def track(self, entity_name: str) -> EntityTrack:
        """엔티티 추적 상태 조회"""
        try:
            return self._tracks[entity_name]
        except KeyError:
            raise UnknownEntity(f"Unknown entity: '{entity_name}'") from None

    def find_sensor(self, entity_name: str, sensor_name: str) -> Optional[Sensor]:
        """
        관측 대상 엔티티 기준 센서 검색

        1. target 이 entity_name 인 센서
        2. entity_name 이 소유한 센서
        """
        sensor = self._sensors_by_target.get((entity_name, sensor_name))
        if sensor is None:
            sensor = self.track(entity_name).entity.find_sensor(sensor_name)
        return sensor

    def calibrate(
        self,
        entity_name: str,
        source: Source,
        transform: Transform,
        weight: float
    ) -> Tuple[Transform, float]:
        """
        원시 관측을 보정된 가중 샘플로 변환

        Args:
            entity_name: 추정 대상 엔티티
            source: 센서 이름 (str) 또는 마커 ID (int)
            transform: 원시 관측 변환
            weight: 관측 가중치

        Returns:
            (보정된 변환, 최종 가중치)

        Raises:
            UnknownEntity: 설정에 없는 엔티티
            InvalidSample: 알 수 없는 센서/마커, 미지정 마커(-1)
        """
        track = self.track(entity_name)

        if isinstance(source, (int, np.integer)) and not isinstance(source, bool):
            marker_id = int(source)
            if marker_id == UNDEFINED_MARKER_ID:
                raise InvalidSample(f"Marker id -1 is undefined (entity '{entity_name}')")
            marker = track.entity.find_marker(marker_id)
            if marker is None:
                raise InvalidSample(f"Unknown marker {marker_id} for entity '{entity_name}'")
            return transform * marker.calibration, weight

        if isinstance(source, str):
            sensor = self.find_sensor(entity_name, source)
            if sensor is None:
                raise InvalidSample(f"Unknown sensor '{source}' for entity '{entity_name}'")
            w = validate_sample(transform, weight)
            return transform * sensor.calibration, w * sensor.weight

        raise InvalidSample(f"Source must be a sensor name or marker id, got {source!r}")

    def observe(
        self,
        entity_name: str,
        source: Source,
        transform: Transform,
        weight: float,
        timestamp: float
    ) -> Transform:
        """
        관측 처리

        Returns:
            갱신된 합의 자세
        """
        timestamp = _check_timestamp(timestamp)
        sample, w = self.calibrate(entity_name, source, transform, weight)
        estimate = self.track(entity_name).add(sample, w, timestamp)
        logger.debug(f"Observe {entity_name} <- {source!r} (w={w:.4f}, t={timestamp:.3f})")
        return estimate

    def add_sample(
        self,
        entity_name: str,
        transform: Transform,
        weight: float,
        timestamp: float
    ) -> Transform:
        """보정이 끝난 샘플 직접 추가"""
        return self.track(entity_name).add(transform, weight, timestamp)

    def current_estimate(self, entity_name: str) -> Transform:
        """현재 합의 자세 (샘플이 없으면 단위 변환)"""
        return self.track(entity_name).estimate()

    def reset(self, entity_name: str):
        """엔티티 누적 상태 초기화"""
        self.track(entity_name).reset()
        logger.debug(f"Track reset: {entity_name}")

    def reset_all(self):
        """전체 초기화"""
        for track in self._tracks.values():
            track.reset()
        logger.info("FusionEngine reset")

    def last_update(self, entity_name: str) -> Optional[float]:
        return self.track(entity_name).last_update

    def sample_count(self, entity_name: str) -> int:
        return self.track(entity_name).sample_count

    def is_stale(self, entity_name: str, now: float) -> bool:
        """decay_duration 이내 갱신이 없으면 True"""
        last = self.track(entity_name).last_update
        if last is None:
            return True
        return (now - last) > self.options.decay_duration

    def estimates(self) -> Dict[str, Transform]:
        """샘플이 있는 엔티티의 합의 자세"""
        return {
            name: track.estimate()
            for name, track in self._tracks.items()
            if track.sample_count > 0
        }

    @property
    def entity_names(self) -> List[str]:
        return list(self._tracks.keys())
