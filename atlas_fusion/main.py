"""
main.py - atlas_fusion 통합 실행

설정 로드 + 관측 재생 + 융합 결과 내보내기를 묶은 파이프라인과 CLI.

사용법:
    # 설정 확인
    atlas_fusion dump --config config/atlas.yaml

    # 기록된 관측 재생
    atlas_fusion replay \
        --config config/atlas.yaml \
        --observations recordings/session01.csv \
        --output output/fused.csv

Version: 1.0
Author: FurSys AI Team
"""

import argparse
import logging
import sys
import pandas as pd
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .config.fusion_config import ConfigurationModel, load_config
from .errors import AtlasFusionError, InvalidSample, UnknownEntity
from .fusion.filters import FusionMode
from .fusion.fusion_engine import FusionEngine
from .geometry.transform import Transform
from .input.observation_loader import Observation, ObservationLoader

logger = logging.getLogger(__name__)

# 진행 로그 간격 (관측 수)
LOG_INTERVAL = 100


@dataclass
class FusionResult:
    """
    융합 결과

    관측 하나를 처리한 직후의 엔티티 합의 자세입니다.
    """
    timestamp: float
    entity: str
    source: Union[str, int]
    estimate: Transform
    sample_count: int

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환 (CSV 한 행)"""
        t = self.estimate.translation
        q = self.estimate.rotation
        return {
            'timestamp': self.timestamp,
            'entity': self.entity,
            'source': self.source,
            'x': float(t[0]),
            'y': float(t[1]),
            'z': float(t[2]),
            'qx': q.x,
            'qy': q.y,
            'qz': q.z,
            'qw': q.w,
            'sample_count': self.sample_count
        }


class FusionPipeline:
    """
    관측 재생 파이프라인

    FusionEngine 에 관측을 순서대로 전달하고 결과를 기록합니다.
    거부된 관측은 경고 로그 후 건너뜁니다.

    Example:
        >>> pipeline = FusionPipeline.from_config_file("config/atlas.yaml")
        >>> pipeline.process_sequence(ObservationLoader("session01.csv"))
        >>> pipeline.save("output/fused.csv")
    """

    def __init__(
        self,
        config: ConfigurationModel,
        mode: FusionMode = FusionMode.WEIGHTED_MEAN
    ):
        self.config = config
        self.options = config.options()
        self.engine = FusionEngine(config, options=self.options, mode=mode)

        self._results: List[FusionResult] = []
        self._rejected = 0

        logger.info("FusionPipeline initialized")

    @classmethod
    def from_config_file(
        cls,
        config_path: Union[str, Path],
        mode: FusionMode = FusionMode.WEIGHTED_MEAN
    ) -> 'FusionPipeline':
        return cls(load_config(config_path), mode=mode)

    def process_observation(self, obs: Observation) -> Optional[FusionResult]:
        """
        관측 하나 처리

        Returns:
            FusionResult 또는 거부 시 None
        """
        try:
            estimate = self.engine.observe(
                obs.entity, obs.source, obs.transform, obs.weight, obs.timestamp
            )
        except (InvalidSample, UnknownEntity) as e:
            self._rejected += 1
            logger.warning(f"Observation rejected at t={obs.timestamp!r}: {e}")
            return None

        result = FusionResult(
            timestamp=obs.timestamp,
            entity=obs.entity,
            source=obs.source,
            estimate=estimate,
            sample_count=self.engine.sample_count(obs.entity)
        )
        self._results.append(result)
        return result

    def process_sequence(self, observations: Iterable[Observation]) -> List[FusionResult]:
        """관측 시퀀스 처리"""
        results = []
        for i, obs in enumerate(observations):
            result = self.process_observation(obs)
            if result is not None:
                results.append(result)

            if i % LOG_INTERVAL == 0:
                logger.info(f"Observation {i}: {len(results)} fused, {self._rejected} rejected")

        return results

    def replay(self, loader: ObservationLoader) -> List[FusionResult]:
        """
        로더의 관측 재생

        읽을 수 없는 행은 경고 후 건너뜁니다.
        """
        results = []
        for i in range(len(loader)):
            try:
                result = self.process_observation(loader.load_observation(i))
            except InvalidSample as e:
                self._rejected += 1
                logger.warning(f"Skipping observation row: {e}")
            else:
                if result is not None:
                    results.append(result)

            if i % LOG_INTERVAL == 0 or i == len(loader) - 1:
                logger.info(f"Observation {i}: {len(results)} fused, {self._rejected} rejected")

        return results

    def to_dataframe(self) -> pd.DataFrame:
        """결과 테이블"""
        columns = ['timestamp', 'entity', 'source', 'x', 'y', 'z', 'qx', 'qy', 'qz', 'qw', 'sample_count']
        return pd.DataFrame([r.to_dict() for r in self._results], columns=columns)

    def save(self, filepath: Union[str, Path]) -> Path:
        """결과 CSV 저장"""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().to_csv(path, index=False)
        logger.info(f"Results saved to {path}")
        return path

    def reset(self):
        """파이프라인 리셋"""
        self.engine.reset_all()
        self._results = []
        self._rejected = 0
        logger.info("Pipeline reset")

    @property
    def results(self) -> List[FusionResult]:
        return list(self._results)

    @property
    def rejected_count(self) -> int:
        return self._rejected


def run_replay(
    config_path: Union[str, Path],
    observations_path: Union[str, Path],
    output_path: Optional[Union[str, Path]] = None,
    mode: FusionMode = FusionMode.WEIGHTED_MEAN
) -> FusionPipeline:
    """
    관측 파일 재생 후 결과 저장

    publishPoseTopics 옵션이 꺼져 있으면 결과를 저장하지 않습니다.
    """
    pipeline = FusionPipeline.from_config_file(config_path, mode=mode)
    loader = ObservationLoader(observations_path)
    pipeline.replay(loader)

    if output_path is not None:
        if pipeline.options.publish_pose_topics:
            pipeline.save(output_path)
        else:
            logger.info("publishPoseTopics is disabled, results not exported")

    for name, estimate in pipeline.engine.estimates().items():
        logger.info(f"Final estimate {name}: {estimate}")

    return pipeline


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='atlas_fusion pose fusion')
    parser.add_argument(
        '--log_level',
        choices=['debug', 'info', 'warning', 'error'],
        default='info',
        help='로그 레벨'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    dump_parser = subparsers.add_parser('dump', help='설정 요약 출력')
    dump_parser.add_argument('--config', type=str, required=True, help='설정 파일 경로')

    replay_parser = subparsers.add_parser('replay', help='기록된 관측 재생')
    replay_parser.add_argument('--config', type=str, required=True, help='설정 파일 경로')
    replay_parser.add_argument('--observations', type=str, required=True, help='관측 CSV 경로')
    replay_parser.add_argument('--output', type=str, default=None, help='결과 CSV 경로')
    replay_parser.add_argument(
        '--mode',
        choices=[m.value for m in FusionMode],
        default=FusionMode.WEIGHTED_MEAN.value,
        help='누적 정책'
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == 'dump':
            config = load_config(args.config)
            print(config.dump())
            if config.diagnostics:
                logger.warning(f"{len(config.diagnostics)} field(s) fell back to defaults")
        else:
            pipeline = run_replay(
                args.config,
                args.observations,
                output_path=args.output,
                mode=FusionMode(args.mode)
            )
            logger.info(
                f"Replay finished: {len(pipeline.results)} fused, {pipeline.rejected_count} rejected"
            )
    except (AtlasFusionError, FileNotFoundError, ValueError) as e:
        logger.error(f"atlas_fusion failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
