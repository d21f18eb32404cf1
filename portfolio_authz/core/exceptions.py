class PortfolioAuthzException(Exception):
    """Base exception for the portfolio authorization service"""

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code


class UnauthorizedException(PortfolioAuthzException):
    """Raised when no upstream-verified identity accompanies the request"""

    pass


class NotFoundException(PortfolioAuthzException):
    """Raised when resource not found"""

    pass


class ForbiddenException(PortfolioAuthzException):
    """Raised when a security validation denies the operation"""

    pass


class ValidationException(PortfolioAuthzException):
    """Raised for malformed input such as unknown roles or permission tokens"""

    pass
