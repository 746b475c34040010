"""
atlas_fusion - 다중 센서 자세 융합 시스템

주요 특징:
- YAML 기반 추적 환경 설정 (엔티티/센서/마커/옵션)
- 역분산 가중 위치 평균
- 고유벡터 기반 쿼터니언 평균 (부호 무관)
- 엔티티별 지수 시간 감쇠

Version: 1.0
Author: FurSys AI Team
"""

__version__ = "1.0.0"
__author__ = "FurSys AI Team"

from .errors import (
    AtlasFusionError,
    MalformedDocument,
    FieldOutOfRange,
    InvalidSample,
    UnknownEntity
)

from .geometry.transform import (
    Quaternion,
    Transform
)

from .config.fusion_config import (
    ConfigurationModel,
    Entity,
    Sensor,
    Marker,
    Options,
    SensorType,
    load_config,
    load_config_from_string,
    parse_transform
)

from .fusion.filters import (
    FusionMode,
    PoseAccumulator,
    WeightedMean,
    PassThrough
)

from .fusion.fusion_engine import (
    FusionEngine,
    EntityTrack
)

__all__ = [
    # Errors
    'AtlasFusionError',
    'MalformedDocument',
    'FieldOutOfRange',
    'InvalidSample',
    'UnknownEntity',
    # Geometry
    'Quaternion',
    'Transform',
    # Config
    'ConfigurationModel',
    'Entity',
    'Sensor',
    'Marker',
    'Options',
    'SensorType',
    'load_config',
    'load_config_from_string',
    'parse_transform',
    # Fusion
    'FusionMode',
    'PoseAccumulator',
    'WeightedMean',
    'PassThrough',
    'FusionEngine',
    'EntityTrack',
]
