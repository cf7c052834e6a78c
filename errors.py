# errors.py


class ServiceError(Exception):
    """Base class for every error the service raises on purpose."""

    code = "internal_error"


class ConfigurationError(ServiceError):
    code = "configuration_error"


class LoadError(ServiceError):
    code = "load_error"


class TransportError(ServiceError):
    code = "transport_error"


class ClientRequestError(ServiceError):
    code = "bad_request"
    status = 400


class ScanEngineError(ServiceError):
    code = "scan_failed"
    status = 500
