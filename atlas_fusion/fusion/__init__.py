"""
fusion 모듈 - 자세 융합

가중 평균(위치 + 고유벡터 기반 회전 평균) 누적기와
시간 감쇠를 적용하는 엔티티별 융합 엔진을 제공합니다.
"""

from .filters import (
    FusionMode,
    PoseAccumulator,
    WeightedMean,
    PassThrough,
    create_accumulator,
    validate_sample
)

from .fusion_engine import (
    FusionEngine,
    EntityTrack
)

__all__ = [
    'FusionMode',
    'PoseAccumulator',
    'WeightedMean',
    'PassThrough',
    'create_accumulator',
    'validate_sample',
    'FusionEngine',
    'EntityTrack',
]
