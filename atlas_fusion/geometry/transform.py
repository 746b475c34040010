"""
transform.py - 강체 변환 표현

센서/마커 보정값과 융합 결과를 표현하는 기본 타입:
- Quaternion (x, y, z, w) - scipy/ROS 형식
- Transform (회전 쿼터니언 + 이동 벡터)

설계 원칙:
1. 내부 회전 표현은 항상 단위 쿼터니언
2. 오일러 입력은 Yaw-Pitch-Roll (도) -> R = Rz(yaw) * Ry(pitch) * Rx(roll)
3. 변환 합성: a * b 는 b를 먼저 적용한 뒤 a를 적용

Version: 1.0
Author: FurSys AI Team
"""

import numpy as np
from scipy.spatial.transform import Rotation
from typing import Dict, Any, Sequence, Tuple
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)

# 정규화 허용 오차
NORM_EPSILON = 1e-10
UNIT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class Quaternion:
    """
    쿼터니언 (x, y, z, w) - scipy/ROS 형식

    표현: q = w + xi + yj + zk
    q 와 -q 는 같은 회전을 나타냅니다.
    """
    x: float
    y: float
    z: float
    w: float

    def to_array(self) -> np.ndarray:
        """[x, y, z, w] 형식 (scipy 표준)"""
        return np.array([self.x, self.y, self.z, self.w], dtype=np.float64)

    @property
    def norm(self) -> float:
        """쿼터니언 크기"""
        return float(np.linalg.norm(self.to_array()))

    @property
    def is_unit(self) -> bool:
        """단위 쿼터니언 여부"""
        return abs(self.norm - 1.0) < UNIT_TOLERANCE

    @property
    def is_degenerate(self) -> bool:
        """크기가 0인 (회전으로 해석 불가) 쿼터니언"""
        return not np.all(np.isfinite(self.to_array())) or self.norm < NORM_EPSILON

    def normalize(self) -> 'Quaternion':
        """단위 쿼터니언으로 정규화 (크기 0이면 단위 회전)"""
        arr = self.to_array()
        norm = np.linalg.norm(arr)
        if not np.isfinite(norm) or norm < NORM_EPSILON:
            return Quaternion.identity()
        return Quaternion.from_array(arr / norm)

    def canonical(self) -> 'Quaternion':
        """w >= 0 부호로 정렬된 쿼터니언"""
        if self.w < 0:
            return Quaternion(x=-self.x, y=-self.y, z=-self.z, w=-self.w)
        return self

    def conjugate(self) -> 'Quaternion':
        """켤레 쿼터니언 (회전의 역)"""
        return Quaternion(x=-self.x, y=-self.y, z=-self.z, w=self.w)

    def inverse(self) -> 'Quaternion':
        """역 쿼터니언"""
        return self.conjugate().normalize()

    def __mul__(self, other: 'Quaternion') -> 'Quaternion':
        """해밀턴 곱 (회전 합성)"""
        w1, x1, y1, z1 = self.w, self.x, self.y, self.z
        w2, x2, y2, z2 = other.w, other.x, other.y, other.z

        return Quaternion(
            x=w1*x2 + x1*w2 + y1*z2 - z1*y2,
            y=w1*y2 - x1*z2 + y1*w2 + z1*x2,
            z=w1*z2 + x1*y2 - y1*x2 + z1*w2,
            w=w1*w2 - x1*x2 - y1*y2 - z1*z2
        )

    def dot(self, other: 'Quaternion') -> float:
        """내적"""
        return float(np.dot(self.to_array(), other.to_array()))

    def angle_to(self, other: 'Quaternion') -> float:
        """다른 쿼터니언까지의 각도 (도), 부호 무관"""
        dot = abs(self.normalize().dot(other.normalize()))
        dot = np.clip(dot, -1.0, 1.0)
        return float(np.rad2deg(2 * np.arccos(dot)))

    def rotate(self, vector: Sequence[float]) -> np.ndarray:
        """벡터 회전 (입력 배열은 읽기 전용이어도 됨)"""
        # Rotation.apply 는 쓰기 가능한 버퍼를 요구하므로 항상 복사본 전달
        return Rotation.from_quat(self.normalize().to_array()).apply(
            np.array(vector, dtype=np.float64)
        )

    def to_ypr(self, degrees: bool = True) -> Tuple[float, float, float]:
        """(yaw, pitch, roll) 반환"""
        ypr = Rotation.from_quat(self.normalize().to_array()).as_euler('ZYX', degrees=degrees)
        return float(ypr[0]), float(ypr[1]), float(ypr[2])

    def to_rotation_matrix(self) -> np.ndarray:
        """3x3 회전 행렬"""
        return Rotation.from_quat(self.normalize().to_array()).as_matrix()

    def __repr__(self) -> str:
        return f"Quaternion(x={self.x:.4f}, y={self.y:.4f}, z={self.z:.4f}, w={self.w:.4f})"

    @classmethod
    def identity(cls) -> 'Quaternion':
        """단위 쿼터니언 (회전 없음)"""
        return cls(x=0.0, y=0.0, z=0.0, w=1.0)

    @classmethod
    def from_array(cls, arr: Sequence[float]) -> 'Quaternion':
        """[x, y, z, w] 배열에서 생성"""
        if len(arr) != 4:
            raise ValueError(f"Expected 4 quaternion components, got {len(arr)}")
        return cls(x=float(arr[0]), y=float(arr[1]), z=float(arr[2]), w=float(arr[3]))

    @classmethod
    def from_ypr(
        cls,
        yaw: float,
        pitch: float,
        roll: float,
        degrees: bool = True
    ) -> 'Quaternion':
        """
        Yaw-Pitch-Roll에서 생성

        yaw: Z축, pitch: Y축, roll: X축 회전
        R = Rz(yaw) * Ry(pitch) * Rx(roll)
        """
        rot = Rotation.from_euler('ZYX', [yaw, pitch, roll], degrees=degrees)
        return cls.from_array(rot.as_quat())

    @classmethod
    def from_axis_angle(cls, axis: Sequence[float], angle_deg: float) -> 'Quaternion':
        """축-각도에서 생성"""
        axis = np.asarray(axis, dtype=np.float64)
        axis = axis / np.linalg.norm(axis)
        rot = Rotation.from_rotvec(axis * np.deg2rad(angle_deg))
        return cls.from_array(rot.as_quat())

    @classmethod
    def from_rotation_matrix(cls, R: np.ndarray) -> 'Quaternion':
        """회전 행렬에서 생성"""
        return cls.from_array(Rotation.from_matrix(np.array(R, dtype=np.float64)).as_quat())


def _as_vector3(values: Any) -> np.ndarray:
    vec = np.array(values, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"Expected 3 translation components, got {vec.size}")
    vec.setflags(write=False)
    return vec


@dataclass(frozen=True, eq=False)
class Transform:
    """
    강체 변환 (회전 + 이동)

    Attributes:
        rotation: 단위 쿼터니언
        translation: [x, y, z] (읽기 전용 배열)

    Example:
        >>> t = Transform(Quaternion.from_ypr(90, 0, 0), [1.0, 0.0, 0.0])
        >>> p = t.apply([1.0, 0.0, 0.0])  # ~[1, 1, 0]
    """
    rotation: Quaternion = field(default_factory=Quaternion.identity)
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        # 생성 시점에 단위 쿼터니언 및 읽기 전용 벡터 보장
        if self.rotation.is_degenerate:
            raise ValueError(f"Degenerate rotation: {self.rotation!r}")
        object.__setattr__(self, 'rotation', self.rotation.normalize())
        object.__setattr__(self, 'translation', _as_vector3(self.translation))

    @classmethod
    def identity(cls) -> 'Transform':
        """단위 변환"""
        return cls()

    @classmethod
    def from_matrix(cls, matrix: np.ndarray) -> 'Transform':
        """4x4 동차 변환 행렬에서 생성"""
        matrix = np.asarray(matrix, dtype=np.float64)
        if matrix.shape != (4, 4):
            raise ValueError(f"Expected 4x4 matrix, got {matrix.shape}")
        return cls(
            rotation=Quaternion.from_rotation_matrix(matrix[:3, :3]),
            translation=matrix[:3, 3]
        )

    def to_matrix(self) -> np.ndarray:
        """4x4 동차 변환 행렬 [R|t; 0 1]"""
        matrix = np.eye(4)
        matrix[:3, :3] = self.rotation.to_rotation_matrix()
        matrix[:3, 3] = self.translation
        return matrix

    def apply(self, point: Sequence[float]) -> np.ndarray:
        """점 변환: R * p + t"""
        return self.rotation.rotate(point) + self.translation

    def inverse(self) -> 'Transform':
        """역변환"""
        rot_inv = self.rotation.inverse()
        return Transform(rotation=rot_inv, translation=-rot_inv.rotate(self.translation))

    def __mul__(self, other: 'Transform') -> 'Transform':
        """변환 합성 (other 먼저 적용)"""
        return Transform(
            rotation=self.rotation * other.rotation,
            translation=self.rotation.rotate(other.translation) + self.translation
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Transform):
            return NotImplemented
        return (
            self.rotation == other.rotation
            and np.array_equal(self.translation, other.translation)
        )

    def is_close(self, other: 'Transform', atol: float = 1e-6) -> bool:
        """허용 오차 내 동일 여부 (쿼터니언 부호 무관)"""
        same_rot = abs(abs(self.rotation.dot(other.rotation)) - 1.0) < atol
        return same_rot and bool(np.allclose(self.translation, other.translation, atol=atol))

    def to_dict(self) -> Dict[str, Any]:
        """설정 문서 형식 딕셔너리 ({'rot': [x,y,z,w], 'origin': [x,y,z]})"""
        return {
            'rot': self.rotation.to_array().tolist(),
            'origin': self.translation.tolist()
        }

    def __repr__(self) -> str:
        t = self.translation
        return f"Transform(rot={self.rotation!r}, origin=[{t[0]:.4f}, {t[1]:.4f}, {t[2]:.4f}])"
