class NexusException(Exception):
    """NEXUS 系统基础异常类"""
    error = 'nexus_error'
    retryable = False

    def __init__(self, message, code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['error'] = self.error
        rv['retryable'] = self.retryable
        rv['success'] = False
        return rv


class ValidationError(NexusException):
    """输入数据非法（在任何写入之前检出）"""
    error = 'validation_error'

    def __init__(self, message="Invalid data", field=None, payload=None, code=400):
        payload = dict(payload or ())
        if field:
            payload['field'] = field
        super().__init__(message, code=code, payload=payload)
        self.field = field


class NotFoundError(ValidationError):
    """引用的客户/商品/订单等不存在"""
    error = 'not_found'

    def __init__(self, message="Resource not found", field=None, payload=None):
        super().__init__(message, field=field, payload=payload, code=404)


class ConflictError(NexusException):
    """单号冲突或版本冲突，可整单重试"""
    error = 'conflict'
    retryable = True

    def __init__(self, message="Conflict", payload=None):
        super().__init__(message, code=409, payload=payload)


class StateError(NexusException):
    """非法状态流转 / 当前状态不允许该操作"""
    error = 'state_error'

    def __init__(self, message="Illegal state", payload=None):
        super().__init__(message, code=409, payload=payload)


class ImmutableRecordError(StateError):
    """试图修改或删除只追加记录（状态历史、库存流水）"""
    error = 'immutable_record'


class StorageError(NexusException):
    """底层事务失败，不可直接重试"""
    error = 'storage_error'

    def __init__(self, message="Storage failure", payload=None):
        super().__init__(message, code=500, payload=payload)
