"""Error taxonomy shared by the registry, backends, query engine and HTTP layer."""


class EntError(Exception):
    """Base error. `code` and `status_code` drive the JSON error response."""

    code = "error"
    status_code = 500
    parameter: str | None = None


class BucketNotFound(EntError):
    code = "bucket_not_found"
    status_code = 404

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Bucket not found: {name}")


class BucketExists(EntError):
    code = "bucket_exists"
    status_code = 409

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Bucket already exists: {name}")


class FileNotFound(EntError):
    code = "file_not_found"
    status_code = 404

    def __init__(self, bucket: str, key: str):
        self.bucket = bucket
        self.key = key
        super().__init__(f"File not found: {bucket}/{key}")


class InvalidQuery(EntError):
    """A listing parameter failed validation. Raised before any backend call."""

    code = "invalid_query"
    status_code = 400

    def __init__(self, parameter: str, reason: str):
        self.parameter = parameter
        self.reason = reason
        super().__init__(f"Invalid {parameter}: {reason}")


class InvalidKey(EntError):
    code = "invalid_key"
    status_code = 400

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid key {key!r}: {reason}")


class BackendIO(EntError):
    """Storage backend failure. The original exception is kept as `cause` and chained."""

    code = "backend_io"
    status_code = 502

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Backend {operation} failed: {cause}")
