"""
Global error handling middleware.
"""

import time
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import SQLAlchemyError

from bi_portal.utils.logger import get_logger
from bi_portal.utils.exceptions import (
    PortalError,
    AuthenticationError,
    ConfigurationError,
    DatabaseError,
    FetchFailure,
    SessionClosedError,
)

logger = get_logger(__name__)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware for consistent error handling and logging.
    """

    async def dispatch(self, request: Request, call_next):
        """Process request with error handling."""
        start_time = time.time()

        try:
            response = await call_next(request)

            duration = time.time() - start_time
            logger.info(
                f"{request.method} {request.url.path} - {response.status_code} - {duration:.3f}s"
            )

            return response

        except AuthenticationError as e:
            logger.warning(f"Authentication error: {e}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={
                    "error": "Authentication Error",
                    "message": e.message
                },
                headers={"WWW-Authenticate": "Bearer"}
            )

        except SessionClosedError as e:
            logger.info(f"Closed session used: {e}")
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content={
                    "error": "Session Closed",
                    "message": e.message
                }
            )

        except FetchFailure as e:
            logger.error(f"Upstream read failed: {e}")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "error": "Service Unavailable",
                    "message": e.message,
                    "details": e.details
                }
            )

        except (DatabaseError, SQLAlchemyError) as e:
            logger.error(f"Database error: {e}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Database Error",
                    "message": "A database error occurred"
                }
            )

        except ConfigurationError as e:
            logger.critical(f"Configuration error: {e}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Configuration Error",
                    "message": e.message
                }
            )

        except PortalError as e:
            logger.error(f"Portal error: {e}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Internal Error",
                    "message": e.message
                }
            )

        except Exception as e:
            logger.error(f"Unhandled exception: {e}", exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Internal Server Error",
                    "message": "An unexpected error occurred"
                }
            )
