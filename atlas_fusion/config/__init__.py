"""
config 모듈 - 추적 환경 설정 관리
"""

from .fusion_config import (
    ConfigurationModel,
    Entity,
    Sensor,
    Marker,
    Options,
    SensorType,
    load_config,
    load_config_from_string,
    parse_sensor_type,
    parse_transform
)

__all__ = [
    'ConfigurationModel',
    'Entity',
    'Sensor',
    'Marker',
    'Options',
    'SensorType',
    'load_config',
    'load_config_from_string',
    'parse_sensor_type',
    'parse_transform',
]
