class EngineError(Exception):
    """Base class."""
    code = "engine_error"


class ValidationError(EngineError):
    code = "validation_error"


class NotFoundError(EngineError):
    code = "not_found"


class ConflictError(EngineError):
    code = "conflict"


class InvalidStateError(EngineError):
    code = "invalid_state"


class TrialAlreadyUsedError(EngineError):
    code = "trial_already_used"


class MultiCategoryDemoError(EngineError):
    code = "multi_category_demo"


class AccessDeniedError(EngineError):
    code = "access_denied"


class OperationFailedError(EngineError):
    """Сбой хранилища во время перехода состояния."""
    code = "operation_failed"


class DatabaseError(OperationFailedError):
    pass


class NotificationError(EngineError):
    code = "notification_failed"


class RecipientBlockedError(NotificationError):
    """Получатель заблокировал бота (Telegram отвечает 403)."""
    code = "recipient_blocked"
