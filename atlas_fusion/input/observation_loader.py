"""
observation_loader.py - 오프라인 관측 데이터 로더

CSV 로 기록된 센서/마커 관측을 시간 순서대로 읽어옵니다.

CSV 컬럼:
    timestamp, entity, source, x, y, z, qx, qy, qz, qw [, weight]

- source 가 정수 문자열이면 마커 ID, 그 외는 센서 이름
- weight 컬럼이 없거나 비어 있으면 1.0
- 숫자가 아닌 값이 있는 행은 로드 시 InvalidSample 로 거부

Version: 1.0
Author: FurSys AI Team
"""

import re
import numpy as np
import pandas as pd
from dataclasses import dataclass
from typing import Iterator, List, Union
from pathlib import Path
import logging

from ..errors import InvalidSample
from ..geometry.transform import Quaternion, Transform

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ['timestamp', 'entity', 'source', 'x', 'y', 'z', 'qx', 'qy', 'qz', 'qw']
NUMERIC_COLUMNS = ['timestamp', 'x', 'y', 'z', 'qx', 'qy', 'qz', 'qw', 'weight']

_MARKER_PATTERN = re.compile(r'-?\d+')


@dataclass
class Observation:
    """단일 관측"""
    timestamp: float
    entity: str
    source: Union[str, int]
    transform: Transform
    weight: float = 1.0

    @property
    def is_marker(self) -> bool:
        return isinstance(self.source, int)


def parse_source(value: str) -> Union[str, int]:
    """정수 문자열은 마커 ID, 그 외는 센서 이름"""
    value = value.strip()
    if _MARKER_PATTERN.fullmatch(value):
        return int(value)
    return value


class ObservationLoader:
    """
    관측 CSV 로더

    행은 timestamp 기준으로 안정 정렬됩니다 (같은 시각은 파일 순서 유지).

    Example:
        >>> loader = ObservationLoader("recordings/session01.csv")
        >>> for obs in loader:
        ...     engine.observe(obs.entity, obs.source, obs.transform, obs.weight, obs.timestamp)
    """

    def __init__(self, csv_path: Union[str, Path]):
        self.csv_path = Path(csv_path)

        if not self.csv_path.exists():
            raise FileNotFoundError(f"Observation file not found: {csv_path}")

        df = pd.read_csv(self.csv_path, dtype={'entity': str, 'source': str})

        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Observation file {csv_path} is missing columns: {missing}")

        if 'weight' not in df.columns:
            df['weight'] = 1.0
        # 빈 weight 만 기본값, 숫자가 아닌 값은 NaN 으로 남겨 행 단위 거부
        blank_weight = df['weight'].isna()
        for column in NUMERIC_COLUMNS:
            raw = df[column]
            df[column] = pd.to_numeric(raw, errors='coerce')
            bad = int((df[column].isna() & raw.notna()).sum())
            if bad:
                logger.warning(f"Column '{column}': {bad} non-numeric value(s) in {self.csv_path}")
        df.loc[blank_weight, 'weight'] = 1.0
        df['source'] = df['source'].fillna('')
        df['entity'] = df['entity'].fillna('')

        # 숫자 기준 정렬, timestamp 가 없는 행은 마지막
        self._df = df.sort_values(
            'timestamp', kind='mergesort', na_position='last'
        ).reset_index(drop=True)

        logger.info(f"ObservationLoader: {len(self._df)} observations from {self.csv_path}")

    def __len__(self) -> int:
        return len(self._df)

    def load_observation(self, idx: int) -> Observation:
        """
        idx 번째 관측 로드

        Raises:
            InvalidSample: 숫자가 아니거나 비어 있는 값, 퇴화된 쿼터니언이 있는 행
        """
        row = self._df.iloc[idx]

        values = row[NUMERIC_COLUMNS].to_numpy(dtype=np.float64)
        if not np.all(np.isfinite(values)):
            bad = [c for c, v in zip(NUMERIC_COLUMNS, values) if not np.isfinite(v)]
            raise InvalidSample(f"Row {idx}: missing or non-numeric values in {bad}")

        quat = Quaternion(
            x=float(row['qx']), y=float(row['qy']), z=float(row['qz']), w=float(row['qw'])
        )
        if quat.is_degenerate:
            raise InvalidSample(f"Row {idx}: degenerate rotation {quat!r}")

        translation = np.array([row['x'], row['y'], row['z']], dtype=np.float64)

        return Observation(
            timestamp=float(row['timestamp']),
            entity=str(row['entity']).strip(),
            source=parse_source(str(row['source'])),
            transform=Transform(rotation=quat, translation=translation),
            weight=float(row['weight'])
        )

    def __iter__(self) -> Iterator[Observation]:
        for i in range(len(self)):
            yield self.load_observation(i)

    @property
    def entities(self) -> List[str]:
        """관측에 등장하는 엔티티 이름"""
        return sorted(self._df['entity'].astype(str).str.strip().unique().tolist())

    @property
    def time_range(self) -> tuple:
        """(첫 시각, 마지막 시각), timestamp 가 없는 행 제외"""
        timestamps = self._df['timestamp'].dropna()
        if len(timestamps) == 0:
            return (0.0, 0.0)
        return float(timestamps.iloc[0]), float(timestamps.iloc[-1])
