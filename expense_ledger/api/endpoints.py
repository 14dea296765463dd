# expense_ledger/api/endpoints.py
import logging
import time
from typing import Any, Dict, List, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from expense_ledger.models.database import Bill, BillStatus, PaymentType
from expense_ledger.models.schemas import (
    BillCreate,
    BillEnvelope,
    BillListEnvelope,
    BillResponse,
    BillStatsEnvelope,
    BillUpdate,
    DirectPaymentCreate,
    DuplicateCheck,
    DuplicateEnvelope,
    EmailNotification,
    EventLogEnvelope,
    EventResponse,
    LedgerEnvelope,
    MessageEnvelope,
    StatusTransition,
    UsersEnvelope,
)
from expense_ledger.services.bill_lifecycle import BillLifecycle
from expense_ledger.services.database_service import DatabaseService
from expense_ledger.services.duplicate_detector import DuplicateDetector
from expense_ledger.services.ledger import LedgerService
from expense_ledger.services.minio_client import PhotoUpload
from expense_ledger.services.notification_service import NotificationService
from expense_ledger.services.statistics import bill_statistics, summarize_users

logger = logging.getLogger(__name__)

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)


# 依赖注入：服务实例在应用启动时创建并挂在 app.state 上
def get_db(request: Request) -> DatabaseService:
    return request.app.state.db


def get_lifecycle(request: Request) -> BillLifecycle:
    return request.app.state.lifecycle


def get_detector(request: Request) -> DuplicateDetector:
    return request.app.state.detector


def get_ledger(request: Request) -> LedgerService:
    return request.app.state.ledger


def get_notifier(request: Request) -> NotificationService:
    return request.app.state.notifier


def client_origin(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _bill_list(bills: List[Bill]) -> List[BillResponse]:
    return [BillResponse.model_validate(bill) for bill in bills]


def _form_model(model: Type[ModelT], fields: Dict[str, Any]) -> ModelT:
    """表单字段转为请求模型，未提交的字段保持未设置"""
    try:
        return model(**{name: value for name, value in fields.items() if value is not None})
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors())


async def _read_photo(photo: Optional[UploadFile]) -> Optional[PhotoUpload]:
    if photo is None:
        return None
    content = await photo.read()
    if not content:
        return None
    return PhotoUpload(content, photo.content_type or "image/jpeg")



@router.get("/all-bills-with-stats", response_model=BillStatsEnvelope)
async def all_bills_with_stats(db: DatabaseService = Depends(get_db)):
    """全部账单及统计"""
    bills = await db.query_bills()
    return BillStatsEnvelope(bills=_bill_list(bills), statistics=bill_statistics(bills))


@router.post("/upload-bill-json", response_model=BillEnvelope)
async def upload_bill(
        payload: BillCreate,
        request: Request,
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    """提交报销单（图片为base64）"""
    bill = await lifecycle.create(payload, origin=client_origin(request))
    return BillEnvelope(bill=BillResponse.model_validate(bill))


@router.get("/user-bills/{user_id}", response_model=BillListEnvelope)
async def user_bills(user_id: str, db: DatabaseService = Depends(get_db)):
    """用户自己的账单，被退回的账单单独查询"""
    bills = await db.query_bills(user_id=user_id, exclude_status=BillStatus.RETURNED)
    return BillListEnvelope(bills=_bill_list(bills))


@router.get("/user-returned-bills/{user_id}", response_model=BillListEnvelope)
async def user_returned_bills(user_id: str, db: DatabaseService = Depends(get_db)):
    """用户被退回、需要修改的账单"""
    bills = await db.query_bills(user_id=user_id, status=BillStatus.RETURNED, order="recently_updated")
    return BillListEnvelope(bills=_bill_list(bills))


@router.get("/all-bills", response_model=BillListEnvelope)
async def all_bills(db: DatabaseService = Depends(get_db)):
    bills = await db.query_bills()
    return BillListEnvelope(bills=_bill_list(bills))


@router.get("/pending-direct-payments/{admin_id}", response_model=BillListEnvelope)
async def pending_direct_payments(admin_id: str, db: DatabaseService = Depends(get_db)):
    """待审批的直接付款，不包含当前管理员自己创建的"""
    bills = await db.query_bills(
        status=BillStatus.PENDING,
        payment_type=PaymentType.DIRECT,
        exclude_admin_id=admin_id,
    )
    return BillListEnvelope(bills=_bill_list(bills))


@router.get("/user-submitted-bills", response_model=BillListEnvelope)
async def user_submitted_bills(db: DatabaseService = Depends(get_db)):
    """用户提交的报销单，不包含管理员直接付款"""
    bills = await db.query_bills(exclude_payment_type=PaymentType.DIRECT)
    return BillListEnvelope(bills=_bill_list(bills))


@router.patch("/update-bill-json/{bill_id}", response_model=BillEnvelope)
async def update_bill(
        bill_id: str,
        payload: BillUpdate,
        request: Request,
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    """修改账单内容，被退回的账单修改后重新进入待审批"""
    bill = await lifecycle.update(bill_id, payload, origin=client_origin(request))
    return BillEnvelope(bill=BillResponse.model_validate(bill))


@router.patch("/update-bill-status/{bill_id}", response_model=BillEnvelope)
async def update_bill_status(
        bill_id: str,
        payload: StatusTransition,
        request: Request,
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    """审批：通过、拒绝或退回"""
    bill = await lifecycle.transition(
        bill_id,
        payload.status,
        admin_id=payload.admin_id,
        admin_name=payload.admin_name,
        remarks=payload.remarks,
        origin=client_origin(request),
    )
    return BillEnvelope(bill=BillResponse.model_validate(bill))


@router.delete("/delete-bill/{bill_id}", response_model=MessageEnvelope)
async def delete_bill(
        bill_id: str,
        request: Request,
        actor: str = Query("Admin"),
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    await lifecycle.delete(bill_id, actor=actor, origin=client_origin(request))
    return MessageEnvelope(message="Bill deleted successfully")


@router.post("/check-duplicate", response_model=DuplicateEnvelope)
async def check_duplicate(payload: DuplicateCheck, detector: DuplicateDetector = Depends(get_detector)):
    """重复提交检测"""
    is_duplicate = await detector.is_duplicate(
        payload.bill_date,
        payload.amount,
        payload.description,
        payload.person_name,
    )
    return DuplicateEnvelope(is_duplicate=is_duplicate)


@router.post("/direct-payment-json", response_model=BillEnvelope)
async def direct_payment(
        payload: DirectPaymentCreate,
        request: Request,
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    """管理员录入直接付款"""
    bill = await lifecycle.create_direct_payment(payload, origin=client_origin(request))
    return BillEnvelope(bill=BillResponse.model_validate(bill))

# multipart/form-data 上传接口，图片以文件形式提交
@router.post("/upload-bill", response_model=BillEnvelope)
async def upload_bill_form(
        request: Request,
        entry_date: Optional[str] = Form(None, alias="entryDate"),
        bill_date: Optional[str] = Form(None, alias="billDate"),
        person_name: Optional[str] = Form(None, alias="personName"),
        vendor_name: Optional[str] = Form(None, alias="vendorName"),
        amount: Optional[str] = Form(None),
        type: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        category: Optional[str] = Form(None),
        user_id: Optional[str] = Form(None, alias="userId"),
        is_draft: Optional[str] = Form(None, alias="isDraft"),
        photo: Optional[UploadFile] = File(None, description="账单图片文件"),
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    """提交报销单（图片为文件）"""
    payload = _form_model(BillCreate, {
        "entry_date": entry_date,
        "bill_date": bill_date,
        "person_name": person_name,
        "vendor_name": vendor_name,
        "amount": amount,
        "type": type,
        "description": description,
        "category": category,
        "user_id": user_id,
        "is_draft": is_draft,
    })
    bill = await lifecycle.create(payload, origin=client_origin(request), photo=await _read_photo(photo))
    return BillEnvelope(bill=BillResponse.model_validate(bill))


@router.patch("/update-bill/{bill_id}", response_model=BillEnvelope)
async def update_bill_form(
        bill_id: str,
        request: Request,
        entry_date: Optional[str] = Form(None, alias="entryDate"),
        bill_date: Optional[str] = Form(None, alias="billDate"),
        person_name: Optional[str] = Form(None, alias="personName"),
        vendor_name: Optional[str] = Form(None, alias="vendorName"),
        amount: Optional[str] = Form(None),
        type: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        category: Optional[str] = Form(None),
        is_draft: Optional[str] = Form(None, alias="isDraft"),
        photo: Optional[UploadFile] = File(None, description="账单图片文件"),
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    """修改账单内容，可同时替换图片"""
    payload = _form_model(BillUpdate, {
        "entry_date": entry_date,
        "bill_date": bill_date,
        "person_name": person_name,
        "vendor_name": vendor_name,
        "amount": amount,
        "type": type,
        "description": description,
        "category": category,
        "is_draft": is_draft,
    })
    bill = await lifecycle.update(bill_id, payload, origin=client_origin(request), photo=await _read_photo(photo))
    return BillEnvelope(bill=BillResponse.model_validate(bill))


@router.post("/direct-payment", response_model=BillEnvelope)
async def direct_payment_form(
        request: Request,
        entry_date: Optional[str] = Form(None, alias="entryDate"),
        bill_date: Optional[str] = Form(None, alias="billDate"),
        vendor_name: Optional[str] = Form(None, alias="vendorName"),
        amount: Optional[str] = Form(None),
        type: Optional[str] = Form(None),
        description: Optional[str] = Form(None),
        category: Optional[str] = Form(None),
        admin_id: Optional[str] = Form(None, alias="adminId"),
        admin_name: Optional[str] = Form(None, alias="adminName"),
        photo: Optional[UploadFile] = File(None, description="账单图片文件"),
        lifecycle: BillLifecycle = Depends(get_lifecycle)
):
    """管理员录入直接付款（图片为文件）"""
    payload = _form_model(DirectPaymentCreate, {
        "entry_date": entry_date,
        "bill_date": bill_date,
        "vendor_name": vendor_name,
        "amount": amount,
        "type": type,
        "description": description,
        "category": category,
        "admin_id": admin_id,
        "admin_name": admin_name,
    })
    bill = await lifecycle.create_direct_payment(
        payload, origin=client_origin(request), photo=await _read_photo(photo)
    )
    return BillEnvelope(bill=BillResponse.model_validate(bill))



@router.get("/ledger", response_model=LedgerEnvelope)
async def ledger(ledger_service: LedgerService = Depends(get_ledger)):
    """台账"""
    return LedgerEnvelope(ledger=await ledger_service.read())


@router.get("/ledger/export")
async def export_ledger(
        request: Request,
        actor: str = Query("Admin"),
        ledger_service: LedgerService = Depends(get_ledger)
):
    """导出台账CSV"""
    content = await ledger_service.export_csv(actor=actor, origin=client_origin(request))
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="ledger.csv"'},
    )


@router.get("/event-logs", response_model=EventLogEnvelope)
async def event_logs(
        entity_id: Optional[str] = Query(None, alias="entityId"),
        db: DatabaseService = Depends(get_db)
):
    """审计事件，按时间倒序"""
    events = await db.list_events(entity_id=entity_id)
    return EventLogEnvelope(logs=[EventResponse.model_validate(event) for event in events])


@router.get("/users", response_model=UsersEnvelope)
async def users(db: DatabaseService = Depends(get_db)):
    """按对方名称汇总的用户统计"""
    bills = await db.query_bills()
    return UsersEnvelope(users=summarize_users(bills))


@router.post("/send-email", response_model=MessageEnvelope)
async def send_email(payload: EmailNotification, notifier: NotificationService = Depends(get_notifier)):
    message = await notifier.send_email(payload.to, payload.subject, payload.html)
    return MessageEnvelope(message=message)


@router.get("/health")
async def health_check(db: DatabaseService = Depends(get_db)):
    """健康检查端点"""
    services_status = {
        "database": await db.check_connection(),
        "timestamp": time.time()
    }

    all_healthy = all(services_status.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content=services_status
    )
