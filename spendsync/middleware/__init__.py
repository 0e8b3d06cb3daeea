from spendsync.middleware.logging_middleware import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
