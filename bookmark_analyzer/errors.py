from __future__ import annotations


class ModelError(Exception):
    def __init__(self, error_type: str, detail: str = ""):
        super().__init__(f"{error_type}: {detail}")
        self.error_type = error_type
        self.detail = detail


class TransportError(ModelError):
    """Connection refused, timeout or a non-2xx answer. Retried."""

    def __init__(self, detail: str = ""):
        super().__init__(ERROR_TRANSPORT, detail)


class ProtocolError(ModelError):
    """Server answered but has no model loaded. Never retried."""

    def __init__(self, detail: str = ""):
        super().__init__(ERROR_PROTOCOL, detail)


ERROR_TRANSPORT = "TRANSPORT"
ERROR_PROTOCOL = "PROTOCOL"
ERROR_PARSE = "PARSE"
ERROR_VALIDATION = "VALIDATION"


def redact_detail(detail: str) -> str:
    detail = detail.strip()
    if len(detail) > 240:
        detail = detail[:240] + "…"
    return detail
