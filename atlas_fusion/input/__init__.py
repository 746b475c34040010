"""
input 모듈 - 관측 데이터 입력 처리

오프라인으로 기록된 관측 CSV 로드를 지원합니다.
"""

from .observation_loader import ObservationLoader, Observation, parse_source

__all__ = ['ObservationLoader', 'Observation', 'parse_source']
