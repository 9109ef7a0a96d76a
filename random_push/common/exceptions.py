"""
뿌리기 도메인 예외 정의

서비스 계층은 비즈니스 규칙 위반 시 아래 예외를 발생시키고,
라우터에서 HTTP 상태 코드로 변환합니다.
- InvalidArgumentError: 잘못된 분배 입력값 (400)
- PushNotFoundError: 토큰/대화방에 해당하는 뿌리기 건 없음 (404)
- ValidationFailedError: 상태 조회 검증 실패 (400)
- IneligibleClaimError: 받기 조건 불충족 (400)
"""


class RandomPushError(Exception):
    """뿌리기 도메인 예외의 기본 클래스"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(RandomPushError, ValueError):
    pass


class PushNotFoundError(RandomPushError, LookupError):
    pass


class ValidationFailedError(RandomPushError, ValueError):
    # 생성자 불일치와 조회 기간 만료를 구분하지 않음
    pass


class IneligibleClaimError(RandomPushError, ValueError):
    pass
