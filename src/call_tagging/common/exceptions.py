"""
异常体系。
每个异常携带 code + http_status + severity。

作用域:
- 单条 (item-scoped): PromptMissing / SchemaInvalid / Provider / Parse / Persistence
  → 记录日志, 该通话保持未处理, 下一轮重新选中。
- 整轮 (pass-scoped): Selection / LLMCircuitOpen → 中止本轮, 由调度器兜底。
"""
from __future__ import annotations


class CallTaggingError(Exception):
    """基类异常。"""
    code: str = "UNKNOWN_ERROR"
    http_status: int = 400
    severity: str = "error"

    def __init__(self, message: str = "", code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error_code": self.code, "message": self.message, "severity": self.severity}


# === 选取 / Prompt ===
class SelectionError(CallTaggingError):
    code = "SELECTION_FAILED"; http_status = 503; severity = "critical"

class PromptMissingError(CallTaggingError):
    code = "PROMPT_MISSING"; http_status = 422; severity = "warning"


# === 分类器 ===
class ClassificationError(CallTaggingError):
    """单条通话分类失败的公共父类。"""
    code = "CLASSIFICATION_FAILED"; http_status = 502

class SchemaInvalidError(ClassificationError):
    code = "SCHEMA_INVALID"; http_status = 502

class ProviderError(ClassificationError):
    code = "PROVIDER_ERROR"; http_status = 502

    def __init__(self, message: str = "", status_code: int | None = None,
                 body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)

class SchemaRejectedError(ProviderError):
    """Provider 不支持 json_schema 模式 (HTTP 400)。内部用于触发降级。"""
    code = "SCHEMA_REJECTED"

class ParseError(ClassificationError):
    code = "PARSE_ERROR"; http_status = 502

class LLMCircuitOpenError(CallTaggingError):
    code = "LLM_CIRCUIT_OPEN"; http_status = 503; severity = "critical"


# === 持久化 ===
class PersistenceError(CallTaggingError):
    code = "PERSISTENCE_FAILED"; http_status = 500


# === 运行 / API ===
class RunInProgressError(CallTaggingError):
    code = "RUN_IN_PROGRESS"; http_status = 409; severity = "warning"

class CallNotFoundError(CallTaggingError):
    code = "CALL_NOT_FOUND"; http_status = 404

class PromptNotFoundError(CallTaggingError):
    code = "PROMPT_NOT_FOUND"; http_status = 404

class UnknownTierError(CallTaggingError):
    code = "UNKNOWN_TIER"; http_status = 422
