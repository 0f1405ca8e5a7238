# portal/middleware.py
# FastAPI middleware: authorization gate, request logging, error handling, CORS
# The gate decides allow/redirect/deny for every request before any route runs
# RELEVANT FILES: auth.py, main.py, config.py

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
import logging
import time

from .auth import Identity, TokenService, get_token_service
from .config import get_settings
from .exceptions import TokenError
from .schemas import Role


logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
UNAUTHORIZED_PATH = "/unauthorized"

PUBLIC_PATHS = frozenset(
    {
        LOGIN_PATH,
        UNAUTHORIZED_PATH,
        "/health",
        "/api/auth/login",
        "/api/auth/logout",
        "/docs",
        "/redoc",
        "/openapi.json",
    }
)

# Area prefix -> role required to enter it
ROLE_AREAS = (
    ("/api/admin", Role.ADMIN),
    ("/api/client", Role.CLIENT),
    ("/admin", Role.ADMIN),
    ("/client", Role.CLIENT),
)


class GateDecision(str, Enum):
    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_UNAUTHORIZED = "redirect_unauthorized"


@dataclass(frozen=True)
class GateResult:
    decision: GateDecision
    identity: Optional[Identity] = None


def _in_area(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def required_role(path: str) -> Optional[Role]:
    for prefix, role in ROLE_AREAS:
        if _in_area(path, prefix):
            return role
    return None


def decide(path: str, token: Optional[str], tokens: TokenService) -> GateResult:
    """
    Authorization decision for one request. Pure: no state is read or written
    besides verifying the token.

    1. Public paths are allowed.
    2. The site root redirects to login.
    3. No token, or a token that fails verification, redirects to login.
    4. A role area entered with another role redirects to unauthorized.
    5. Anything else is allowed with the verified identity.
    """
    if path in PUBLIC_PATHS:
        return GateResult(GateDecision.ALLOW)

    if path == "/":
        return GateResult(GateDecision.REDIRECT_LOGIN)

    if not token:
        return GateResult(GateDecision.REDIRECT_LOGIN)

    try:
        identity = tokens.verify(token)
    except TokenError:
        return GateResult(GateDecision.REDIRECT_LOGIN)

    needed = required_role(path)
    if needed is not None and identity.role != needed:
        return GateResult(GateDecision.REDIRECT_UNAUTHORIZED, identity)

    return GateResult(GateDecision.ALLOW, identity)


def is_api_path(path: str) -> bool:
    return _in_area(path, "/api")


def render_denial(request: Request, result: GateResult):
    """API callers get JSON 401/403; page requests get redirects"""
    path = request.url.path
    if is_api_path(path):
        if result.decision == GateDecision.REDIRECT_LOGIN:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"success": False, "message": "Authentication required"},
            )
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"success": False, "message": "Forbidden"},
        )

    target = LOGIN_PATH if result.decision == GateDecision.REDIRECT_LOGIN else UNAUTHORIZED_PATH
    return RedirectResponse(url=target, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


class AuthorizationGateMiddleware(BaseHTTPMiddleware):
    """
    Single chokepoint for authentication and role checks.
    Runs on every request and attaches the verified identity to request.state.
    """

    def __init__(self, app, tokens: Optional[TokenService] = None):
        super().__init__(app)
        self._tokens = tokens

    @property
    def tokens(self) -> TokenService:
        return self._tokens or get_token_service()

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        token = request.cookies.get(get_settings().auth_cookie_name)
        result = decide(path, token, self.tokens)

        if result.decision != GateDecision.ALLOW:
            logger.info(f"Gate {result.decision.value} for {request.method} {path}")
            return render_denial(request, result)

        request.state.identity = result.identity
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all requests for debugging and monitoring.
    Logs request details and response time.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        logger.info(
            f"Request: {request.method} {request.url.path} "
            f"from {request.client.host if request.client else 'unknown'}"
        )

        try:
            response = await call_next(request)

            duration = time.time() - start_time
            logger.info(
                f"Response: {response.status_code} "
                f"for {request.method} {request.url.path} "
                f"({duration:.3f}s)"
            )
            response.headers["X-Process-Time"] = str(duration)
            return response

        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Request failed: {request.method} {request.url.path} "
                f"({duration:.3f}s) - Error: {str(e)}"
            )
            raise


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handler middleware.
    Catches unhandled exceptions and returns a generic JSON 500.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(f"Unhandled error: {e}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "message": "Operation failed"},
            )


def setup_cors(app, settings):
    """
    Configure CORS middleware for the application.
    Credentials are allowed so the auth cookie travels with requests.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Process-Time"],
    )

    logger.info(f"CORS configured for origins: {settings.cors_origins}")


def setup_middleware(app, settings):
    """
    Setup all middleware for the FastAPI application.
    Order matters - middleware runs in reverse order of registration.
    """
    # Authorization gate (innermost - runs last before routing)
    app.add_middleware(AuthorizationGateMiddleware)

    # CORS (outside the gate; answers preflight requests itself)
    setup_cors(app, settings)

    # Request logging
    app.add_middleware(RequestLoggingMiddleware)

    # Error handler (outermost - catches everything)
    app.add_middleware(ErrorHandlerMiddleware)

    logger.info("All middleware configured successfully")
