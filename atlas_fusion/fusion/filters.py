"""
filters.py - 자세 샘플 누적기

여러 센서의 가중 자세 샘플을 하나의 합의 변환으로 결합합니다.

두 가지 정책 지원 (동일 인터페이스):
1. WeightedMean: 가중 평균 (기본)
   - 위치: Σ(w·v) / Σw
   - 회전: M = Σ(w·q·qᵀ) 의 최대 고유값에 대응하는 고유벡터
2. PassThrough: 융합 없이 원시 샘플 보관 (진단용)

회전 평균 참고:
- 단위 쿼터니언의 선형 결합은 단위 크기가 아니며
  q 와 -q 가 같은 회전이므로 산술 평균은 부호에 따라 결과가 달라짐
- 외적 행렬 M 은 q 와 -q 에 대해 동일하므로 부호에 무관

Version: 1.0
Author: FurSys AI Team
"""

import numpy as np
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Sequence, Union
import logging

from ..errors import InvalidSample
from ..geometry.transform import NORM_EPSILON, Quaternion, Transform

logger = logging.getLogger(__name__)

RotationLike = Union[Quaternion, Sequence[float], np.ndarray]


class FusionMode(Enum):
    """누적 정책"""
    WEIGHTED_MEAN = "weighted_mean"  # 가중 평균 (권장)
    PASS_THROUGH = "pass_through"    # 융합 없음


def _check_weight(weight: float) -> float:
    try:
        w = float(weight)
    except (TypeError, ValueError) as exc:
        raise InvalidSample(f"Weight must be a number, got {weight!r}") from exc
    if not np.isfinite(w) or w <= 0.0:
        raise InvalidSample(f"Weight must be positive and finite, got {weight!r}")
    return w


def _check_vector(vec: Sequence[float]) -> np.ndarray:
    arr = np.asarray(vec, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise InvalidSample(f"Expected a 3D vector, got {arr.size} elements")
    if not np.all(np.isfinite(arr)):
        raise InvalidSample(f"Vector has non-finite elements: {arr}")
    return arr


def _check_rotation(quat: RotationLike) -> np.ndarray:
    """쿼터니언 검증 및 정규화 [x, y, z, w]"""
    if isinstance(quat, Quaternion):
        arr = quat.to_array()
    else:
        arr = np.asarray(quat, dtype=np.float64).reshape(-1)
    if arr.shape != (4,):
        raise InvalidSample(f"Expected a quaternion (x, y, z, w), got {arr.size} elements")

    norm = np.linalg.norm(arr)
    if not np.isfinite(norm) or norm < NORM_EPSILON:
        raise InvalidSample(f"Degenerate rotation: {arr}")
    return arr / norm


def validate_sample(transform: Transform, weight: float) -> float:
    """
    샘플 사전 검증 (상태 변경 전 호출)

    Returns:
        검증된 가중치

    Raises:
        InvalidSample: 가중치 또는 변환이 잘못된 경우
    """
    w = _check_weight(weight)
    _check_vector(transform.translation)
    _check_rotation(transform.rotation)
    return w


class PoseAccumulator(ABC):
    """
    자세 누적기 공통 인터페이스

    샘플 추가, 감쇠(scale), 초기화, 합의 값 조회를 제공합니다.
    잘못된 샘플은 InvalidSample 로 거부되며 내부 상태는 변경되지 않습니다.
    """

    mode: FusionMode

    def add(self, transform: Transform, weight: float = 1.0):
        """
        변환 샘플 추가 (위치 + 회전)

        Args:
            transform: 샘플 변환
            weight: 가중치 (> 0)

        Raises:
            InvalidSample: 가중치가 0 이하인 경우
        """
        w = _check_weight(weight)
        vec = _check_vector(transform.translation)
        quat = _check_rotation(transform.rotation)
        self._fold_vector(vec, w)
        self._fold_rotation(quat, w)

    def add_vector(self, vec: Sequence[float], weight: float = 1.0):
        """위치 샘플 추가"""
        w = _check_weight(weight)
        self._fold_vector(_check_vector(vec), w)

    def add_rotation(self, quat: RotationLike, weight: float = 1.0):
        """회전 샘플 추가 (정규화 후 누적)"""
        w = _check_weight(weight)
        self._fold_rotation(_check_rotation(quat), w)

    @abstractmethod
    def _fold_vector(self, vec: np.ndarray, weight: float):
        ...

    @abstractmethod
    def _fold_rotation(self, quat: np.ndarray, weight: float):
        ...

    @abstractmethod
    def scale(self, factor: float):
        """누적 상태를 factor 배로 감쇠 (0 <= factor <= 1)"""

    @abstractmethod
    def clear(self):
        """누적 상태 초기화"""

    @abstractmethod
    def mean_vector(self) -> np.ndarray:
        """합의 위치"""

    @abstractmethod
    def mean_rotation(self) -> Quaternion:
        """합의 회전"""

    @property
    @abstractmethod
    def total_weight(self) -> float:
        ...

    @property
    def is_empty(self) -> bool:
        return self.total_weight <= 0.0

    def current_estimate(self) -> Transform:
        """합의 변환 (비어 있으면 단위 변환)"""
        return Transform(rotation=self.mean_rotation(), translation=self.mean_vector())


class WeightedMean(PoseAccumulator):
    """
    가중 평균 누적기

    위치 채널:
        sum = Σ(wᵢ·vᵢ), weight = Σwᵢ, mean = sum / weight
    회전 채널:
        M = Σ(wᵢ·qᵢ·qᵢᵀ) (4x4 대칭)
        합의 회전 = M 의 최대 고유값 고유벡터

    고유값 분해는 조회 시점에만 수행하며 결과를 캐시합니다.

    Example:
        >>> acc = WeightedMean()
        >>> acc.add_vector([1, 0, 0], 1.0)
        >>> acc.add_vector([0, 1, 0], 1.0)
        >>> acc.mean_vector()
        array([0.5, 0.5, 0. ])
    """

    mode = FusionMode.WEIGHTED_MEAN

    def __init__(self):
        self._vector_sum = np.zeros(3)
        self._vector_weight = 0.0
        self._quat_matrix = np.zeros((4, 4))
        self._rotation_weight = 0.0
        self._cached_rotation: Optional[Quaternion] = None

    def _fold_vector(self, vec: np.ndarray, weight: float):
        self._vector_sum += weight * vec
        self._vector_weight += weight

    def _fold_rotation(self, quat: np.ndarray, weight: float):
        self._quat_matrix += weight * np.outer(quat, quat)
        self._rotation_weight += weight
        self._cached_rotation = None

    def scale(self, factor: float):
        factor = float(factor)
        if not np.isfinite(factor) or factor < 0.0 or factor > 1.0:
            raise ValueError(f"Decay factor must be in [0, 1], got {factor}")
        if factor == 0.0:
            self.clear()
            return

        # 양수 배율은 고유벡터를 바꾸지 않으므로 캐시 유지
        self._vector_sum *= factor
        self._vector_weight *= factor
        self._quat_matrix *= factor
        self._rotation_weight *= factor

    def clear(self):
        self._vector_sum = np.zeros(3)
        self._vector_weight = 0.0
        self._quat_matrix = np.zeros((4, 4))
        self._rotation_weight = 0.0
        self._cached_rotation = None

    def mean_vector(self) -> np.ndarray:
        if self._vector_weight <= 0.0:
            return np.zeros(3)
        return self._vector_sum / self._vector_weight

    def mean_rotation(self) -> Quaternion:
        if self._rotation_weight <= 0.0:
            return Quaternion.identity()

        if self._cached_rotation is None:
            eigenvalues, eigenvectors = np.linalg.eigh(self._quat_matrix)
            principal = eigenvectors[:, np.argmax(eigenvalues)]
            self._cached_rotation = Quaternion.from_array(principal).normalize().canonical()
            logger.debug(f"Rotation mean recomputed: {self._cached_rotation}")

        return self._cached_rotation

    @property
    def total_weight(self) -> float:
        return self._vector_weight

    @property
    def rotation_weight(self) -> float:
        return self._rotation_weight

    @property
    def is_empty(self) -> bool:
        return self._vector_weight <= 0.0 and self._rotation_weight <= 0.0

    @property
    def quaternion_matrix(self) -> np.ndarray:
        """누적 외적 행렬 M (복사본)"""
        return self._quat_matrix.copy()


class PassThrough(PoseAccumulator):
    """
    통과 누적기 (융합 비활성화)

    가중치 없이 원시 샘플을 도착 순서대로 보관합니다.
    합의 값은 가장 최근 샘플입니다.
    """

    mode = FusionMode.PASS_THROUGH

    def __init__(self):
        self._vectors: List[np.ndarray] = []
        self._rotations: List[Quaternion] = []

    def _fold_vector(self, vec: np.ndarray, weight: float):
        self._vectors.append(vec.copy())

    def _fold_rotation(self, quat: np.ndarray, weight: float):
        self._rotations.append(Quaternion.from_array(quat))

    def scale(self, factor: float):
        # 가중치가 없으므로 감쇠 대상 없음
        pass

    def clear(self):
        self._vectors = []
        self._rotations = []

    def mean_vector(self) -> np.ndarray:
        if not self._vectors:
            return np.zeros(3)
        return self._vectors[-1].copy()

    def mean_rotation(self) -> Quaternion:
        if not self._rotations:
            return Quaternion.identity()
        return self._rotations[-1]

    @property
    def total_weight(self) -> float:
        return float(max(len(self._vectors), len(self._rotations)))

    @property
    def vectors(self) -> List[np.ndarray]:
        return [v.copy() for v in self._vectors]

    @property
    def rotations(self) -> List[Quaternion]:
        return list(self._rotations)


def create_accumulator(mode: FusionMode = FusionMode.WEIGHTED_MEAN) -> PoseAccumulator:
    """정책에 맞는 누적기 생성"""
    if mode == FusionMode.WEIGHTED_MEAN:
        return WeightedMean()
    if mode == FusionMode.PASS_THROUGH:
        return PassThrough()
    raise ValueError(f"Unsupported fusion mode: {mode!r}")
