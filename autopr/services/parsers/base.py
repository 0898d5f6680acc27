from abc import ABC, abstractmethod

from autopr.models.error import ParsedError


class ErrorParser(ABC):
    """에러 파서 추상 클래스"""

    @property
    @abstractmethod
    def source(self) -> str:
        """에러 소스 이름"""
        pass

    @abstractmethod
    def should_process(self, payload: dict) -> bool:
        """
        이 webhook이 작업 대상인지 (lifecycle action 필터)

        대상이 아닌 webhook도 수락(202)은 하되 큐에 넣지 않는다.
        """
        pass

    @abstractmethod
    def parse(self, payload: dict) -> ParsedError | None:
        """
        webhook payload → ParsedError 변환

        Args:
            payload: 원본 webhook payload (dict)

        Returns:
            ParsedError, 또는 에러 레코드를 만들 수 없으면 None.
            스키마가 조금 달라도 예외를 던지지 않는다.
        """
        pass
