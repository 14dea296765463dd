# expense_ledger/exceptions.py


class BillServiceError(Exception):
    """账单服务异常基类，status_code 对应返回给调用方的HTTP状态码"""
    status_code = 500


class ValidationError(BillServiceError):
    """必填字段缺失或字段格式错误"""
    status_code = 400

    def __init__(self, message: str, fields=None):
        super().__init__(message)
        self.fields = sorted(fields or [])


class NotFoundError(BillServiceError):
    """账单不存在"""
    status_code = 404

    def __init__(self, record_id: str):
        super().__init__("Bill not found")
        self.record_id = record_id


class InvalidStatusError(BillServiceError):
    """目标状态不在允许的范围内"""
    status_code = 400


class AuthorizationError(BillServiceError):
    """审批策略拒绝，例如直接付款的创建人自己审批"""
    status_code = 400


class ConflictError(BillServiceError):
    """账单状态已被其他请求修改"""
    status_code = 409


class StorageError(BillServiceError):
    """数据库读写失败"""
    status_code = 500
