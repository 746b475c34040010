"""
geometry 모듈 - 강체 변환 타입

쿼터니언 및 변환(회전 + 이동) 표현과 상호 변환을 제공합니다.
"""

from .transform import Quaternion, Transform

__all__ = ['Quaternion', 'Transform']
