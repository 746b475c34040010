"""
errors.py - atlas_fusion 오류 계층

설정 로드 및 융합 엔진에서 발생하는 오류를 정의합니다.

- MalformedDocument: 설정 문서를 구조적으로 파싱할 수 없음 (치명적)
- FieldOutOfRange: 선택 필드 형식 오류 (비치명적, 진단 기록용)
- InvalidSample: 잘못된 샘플 입력 (호출자 오류, 거부)
- UnknownEntity: 설정에 없는 엔티티 조회

Version: 1.0
Author: FurSys AI Team
"""


class AtlasFusionError(Exception):
    """atlas_fusion 기본 예외"""


class MalformedDocument(AtlasFusionError):
    """설정 문서 파싱 실패"""


class FieldOutOfRange(AtlasFusionError):
    """
    선택 필드 형식 오류

    로더는 이 예외를 raise 하지 않고 진단 목록에 기록합니다.
    해당 필드는 문서화된 기본값으로 대체됩니다.

    Attributes:
        field: 문서 내 필드 경로 (예: 'entities[0].sensors[1].sigma')
        message: 상세 설명
    """

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class InvalidSample(AtlasFusionError, ValueError):
    """0 이하 가중치, 퇴화 회전 등 잘못된 샘플"""


class UnknownEntity(AtlasFusionError, KeyError):
    """설정에 존재하지 않는 엔티티"""

    def __str__(self) -> str:
        return Exception.__str__(self)
