# scan_routes.py
from flask import Blueprint, current_app, jsonify, request

from errors import ClientRequestError
from scan_engine import filter_matches

scan_bp = Blueprint("scan_bp", __name__)

SAMPLE_FIELD = "sample"
NAMESPACE_FIELD = "namespace"


class ScanService:
    """What the scan endpoints need from the running process."""

    def __init__(self, rule_set, engine, logger):
        self.rule_set = rule_set
        self.engine = engine
        self.logger = logger


def get_service() -> ScanService:
    return current_app.extensions["scan_service"]


def _namespace_filter() -> list[str] | None:
    # query string and form body both count, like a merged form
    if NAMESPACE_FIELD not in request.args and NAMESPACE_FIELD not in request.form:
        return None
    return request.args.getlist(NAMESPACE_FIELD) + request.form.getlist(NAMESPACE_FIELD)


# curl http://localhost:8080/yara -F "sample=@test.txt"
@scan_bp.post("/yara")
def api_scan():
    service = get_service()

    if request.mimetype != "multipart/form-data":
        raise ClientRequestError(f"expected a multipart/form-data body, got {request.mimetype or 'no content type'}")
    if not request.mimetype_params.get("boundary"):
        raise ClientRequestError("multipart body has no boundary")

    sample = request.files.get(SAMPLE_FIELD)
    if sample is None:
        raise ClientRequestError(f"missing form field: {SAMPLE_FIELD}")

    data = sample.read() or b""
    matches = service.engine.scan(data)

    namespaces = _namespace_filter()
    kept = filter_matches(matches, namespaces)
    service.logger.debug(
        "Scanned %s (%d bytes): %d match(es), %d after namespace filter",
        sample.filename or SAMPLE_FIELD, len(data), len(matches), len(kept),
    )
    return jsonify({"matchingRules": [m.name for m in kept]})


# curl http://localhost:8080/debug/rules
@scan_bp.get("/debug/rules")
def api_list_rules():
    return jsonify({"rules": get_service().rule_set.names()})
