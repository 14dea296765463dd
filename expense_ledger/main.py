# expense_ledger/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from expense_ledger.api.endpoints import router
from expense_ledger.config import Settings, settings
from expense_ledger.exceptions import BillServiceError
from expense_ledger.services.audit_log import DatabaseAuditLog
from expense_ledger.services.bill_lifecycle import BillLifecycle
from expense_ledger.services.database_service import DatabaseService
from expense_ledger.services.duplicate_detector import DuplicateDetector
from expense_ledger.services.ledger import LedgerService
from expense_ledger.services.minio_client import MinioClient, PhotoStorage
from expense_ledger.services.notification_service import NotificationService

# 配置日志
logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


async def service_error_handler(request: Request, exc: BillServiceError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc)})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        messages.append(f"{location}: {error['msg']}" if location else error["msg"])
    return JSONResponse(status_code=400, content={"success": False, "error": "; ".join(messages)})


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"请求处理失败: {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"success": False, "error": "Server Error"})


def create_app(app_settings: Settings = settings, photo_storage: Optional[PhotoStorage] = None) -> FastAPI:
    """创建应用，测试时可传入独立配置和附件存储"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logging.info("应用启动中...")

        db = DatabaseService(app_settings.database_dsn)
        await db.initialize()
        audit_log = DatabaseAuditLog(db, alert_threshold=app_settings.audit_alert_threshold)

        app.state.db = db
        app.state.lifecycle = BillLifecycle(
            db,
            audit_log,
            photo_storage if photo_storage is not None else MinioClient(app_settings),
            reopen_rejected=app_settings.reopen_rejected_bills,
        )
        app.state.detector = DuplicateDetector(db)
        app.state.ledger = LedgerService(db, audit_log)
        app.state.notifier = NotificationService(audit_log)

        yield

        logging.info("应用关闭中...")
        await db.close()

    app = FastAPI(
        title="报销账单审批与台账服务",
        description="账单提交、审批流转、台账与审计日志",
        version="1.0.0",
        lifespan=lifespan
    )

    # 添加CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    app.add_exception_handler(BillServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    # 注册路由
    app.include_router(router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "message": "报销账单服务运行中",
            "version": "1.0.0",
            "docs": "/docs"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "expense_ledger.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        workers=1
    )
