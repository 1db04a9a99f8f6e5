import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from auth import AuthService, Clock, Identity, make_password_context, utc_now
from config import Settings, get_settings
from database import create_db_engine, create_session_factory, init_db
from errors import AuthError, TodoError
from schemas import LoginRequest, RegisterRequest, TaskCreate, TaskOut, TaskUpdate, Token, UserOut
from storage import MemoryStorage, SqlStorage, Storage
from tasks import TaskService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def build_storage(settings: Settings) -> Storage:
    if settings.storage == "memory":
        return MemoryStorage()
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    return SqlStorage(create_session_factory(engine))


# Dependencies
def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> Identity:
    if credentials is None:
        raise AuthError()
    return auth.verify(credentials.credentials)


# Error handlers
async def todo_error_handler(request: Request, exc: TodoError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    detail = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# Authentication endpoints
def register(
    request: Request,
    payload: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
):
    user = auth.register(payload.username, payload.password)
    return UserOut.model_validate(user)


def login(
    request: Request,
    payload: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
):
    return Token(token=auth.login(payload.username, payload.password))


# Task endpoints
def list_todos(
    identity: Identity = Depends(get_current_identity),
    tasks: TaskService = Depends(get_task_service),
):
    return [TaskOut.model_validate(t) for t in tasks.list(identity)]


def create_todo(
    payload: TaskCreate,
    identity: Identity = Depends(get_current_identity),
    tasks: TaskService = Depends(get_task_service),
):
    return TaskOut.model_validate(tasks.create(identity, payload.title))


def update_todo(
    task_id: int,
    payload: TaskUpdate,
    identity: Identity = Depends(get_current_identity),
    tasks: TaskService = Depends(get_task_service),
):
    patch = payload.model_dump(exclude_unset=True)
    return TaskOut.model_validate(tasks.update(identity, task_id, **patch))


def delete_todo(
    task_id: int,
    identity: Identity = Depends(get_current_identity),
    tasks: TaskService = Depends(get_task_service),
):
    tasks.delete(identity, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def health():
    return {"status": "ok"}


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    settings = settings or get_settings()
    if storage is None:
        storage = build_storage(settings)

    app = FastAPI(title="Todo Service")
    app.state.settings = settings
    app.state.storage = storage
    app.state.auth_service = AuthService(
        storage,
        settings.secret_key,
        algorithm=settings.algorithm,
        token_ttl=timedelta(seconds=settings.token_ttl_seconds),
        clock=clock,
        pwd_context=make_password_context(settings.bcrypt_rounds),
    )
    app.state.task_service = TaskService(storage)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TodoError, todo_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # One limiter per app so counters are not shared between instances.
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    def rate_limited(endpoint, limit: str):
        if not settings.rate_limit_enabled:
            return endpoint
        return limiter.limit(limit)(endpoint)

    app.add_api_route(
        "/register",
        rate_limited(register, settings.register_rate_limit),
        methods=["POST"],
        status_code=status.HTTP_201_CREATED,
        response_model=UserOut,
    )
    app.add_api_route(
        "/login",
        rate_limited(login, settings.login_rate_limit),
        methods=["POST"],
        response_model=Token,
    )
    app.add_api_route("/todos", list_todos, methods=["GET"], response_model=List[TaskOut])
    app.add_api_route(
        "/todos",
        create_todo,
        methods=["POST"],
        status_code=status.HTTP_201_CREATED,
        response_model=TaskOut,
    )
    app.add_api_route("/todos/{task_id}", update_todo, methods=["PUT"], response_model=TaskOut)
    app.add_api_route(
        "/todos/{task_id}",
        delete_todo,
        methods=["DELETE"],
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    app.add_api_route("/health", health, methods=["GET"])

    logger.info("Todo service ready (storage=%s)", type(storage).__name__)
    return app
