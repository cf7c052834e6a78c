# scan_engine.py
import logging
import threading
from typing import Iterable, List, NamedTuple, Optional

import yara

from errors import ScanEngineError
from rules_loader import RuleSet, rule_name, service_namespace

# libyara refuses more than YR_MAX_THREADS (32) scans on one Rules object at once
MAX_CONCURRENT_SCANS = 32


class Match(NamedTuple):
    namespace: str
    identifier: str

    @property
    def name(self) -> str:
        return rule_name(self.namespace, self.identifier)


class ScanEngine:
    """Runs a shared, read-only RuleSet against byte payloads.

    Every scan() gets its own engine scan context and its own result list,
    so concurrent callers never see each other's matches and scans run in
    parallel (the engine releases the GIL while scanning). The only shared
    state is a semaphore that keeps concurrent scans under the engine's
    per-ruleset thread limit; callers past the limit wait for a slot. A
    single lock-guarded context would be simpler but would serialize every
    request behind the slowest upload.
    """

    def __init__(self, rule_set: RuleSet, logger: logging.Logger, timeout: int = 0,
                 max_concurrent_scans: int = MAX_CONCURRENT_SCANS):
        if not 1 <= max_concurrent_scans <= MAX_CONCURRENT_SCANS:
            raise ValueError(f"max_concurrent_scans must be between 1 and {MAX_CONCURRENT_SCANS}")
        self.rule_set = rule_set
        self.logger = logger
        self.timeout = timeout
        self._slots = threading.BoundedSemaphore(max_concurrent_scans)

    def scan(self, data: bytes) -> List[Match]:
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ScanEngineError(f"cannot scan payload of type {type(data).__name__}")

        kwargs = {"data": bytes(data)}
        if self.timeout:
            kwargs["timeout"] = self.timeout

        with self._slots:
            try:
                found = self.rule_set.compiled.match(**kwargs)
            except yara.TimeoutError as e:
                self.logger.error("Scan of %d bytes timed out after %ss", len(data), self.timeout)
                raise ScanEngineError(f"scan timed out after {self.timeout}s") from e
            except yara.Error as e:
                self.logger.error("Got an error scanning %d bytes: %s", len(data), e)
                raise ScanEngineError(str(e)) from e

        return [Match(service_namespace(m.namespace), m.rule) for m in found]


def filter_matches(matches: Iterable[Match], namespaces: Optional[Iterable[str]] = None) -> List[Match]:
    """Keep matches whose namespace is one of namespaces; None keeps everything.

    Comparison is exact and case-sensitive. Order is preserved.
    """
    if namespaces is None:
        return list(matches)
    wanted = set(namespaces)
    return [m for m in matches if m.namespace in wanted]
