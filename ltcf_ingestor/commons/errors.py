class MappingError(Exception):
    """Error base de la transformación de fichero plano a FHIR."""


class FieldValueError(MappingError, ValueError):
    def __init__(self, key: str, value: str, kind: str):
        self.key = key
        self.value = value
        self.kind = kind
        super().__init__(f"Field {key!r}: value {value!r} is not a valid {kind}")


class UnsupportedResourceError(MappingError):
    def __init__(self, resource_type):
        self.resource_type = resource_type
        super().__init__(f"Unsupported resource type: {resource_type!r}")


class SubmissionError(Exception):
    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class AuthError(SubmissionError):
    pass
