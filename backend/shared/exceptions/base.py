"""
기본 도메인 예외 정의
"""


class DomainException(Exception):
    """도메인 기본 예외"""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR",
                 details: dict = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
