# rules_loader.py
import logging
import os
import posixpath
import stat
from typing import Dict, Iterator, List, NamedTuple, Optional

import yara

from errors import LoadError

# Rules living directly in the rules dir are compiled under this key. A
# directory name can never contain "/", so it cannot clash with a real one.
ROOT_NAMESPACE_KEY = "/"


class Rule(NamedTuple):
    namespace: str
    identifier: str

    @property
    def name(self) -> str:
        return rule_name(self.namespace, self.identifier)


def rule_name(namespace: str, identifier: str) -> str:
    # root namespace renders as the bare identifier
    return posixpath.join(namespace, identifier)


def engine_namespace(namespace: str) -> str:
    return namespace or ROOT_NAMESPACE_KEY


def service_namespace(namespace: Optional[str]) -> str:
    if not namespace or namespace == ROOT_NAMESPACE_KEY:
        return ""
    return namespace


def namespace_for(path: str, rules_dir: str) -> str:
    """Name of the file's immediate parent directory, "" for the rules dir itself."""
    rel_dir = os.path.dirname(os.path.relpath(path, rules_dir))
    if rel_dir in ("", "."):
        return ""
    return os.path.basename(rel_dir)


class RuleSet:
    """Compiled rules plus the (namespace, identifier) pairs they were built from."""

    def __init__(self, compiled: yara.Rules, rules: List[Rule], source_count: int = 0):
        self.compiled = compiled
        self.rules = tuple(rules)
        self.source_count = source_count

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def names(self) -> List[str]:
        return [r.name for r in self.rules]


def _raise_walk_error(err: OSError):
    raise err


def discover_rule_files(rules_dir: str, logger: logging.Logger) -> Dict[str, List[str]]:
    """Walk rules_dir and group every regular file under its namespace.

    Entries are visited in lexical order. Symlinks and other non-regular
    entries are skipped with a warning. Any traversal error aborts.
    """
    if not os.path.isdir(rules_dir):
        raise LoadError(f"rules dir {rules_dir} does not exist or is not a directory")

    grouped: Dict[str, List[str]] = {}
    try:
        for dirpath, dirnames, filenames in os.walk(rules_dir, onerror=_raise_walk_error):
            dirnames.sort()
            for dirname in dirnames:
                if os.path.islink(os.path.join(dirpath, dirname)):
                    logger.warning("Not following symlinked dir %s", os.path.join(dirpath, dirname))
            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)
                mode = os.lstat(path).st_mode
                if not stat.S_ISREG(mode):
                    logger.warning("Skipping non-regular file %s", path)
                    continue
                if not os.access(path, os.R_OK):
                    raise LoadError(f"rule file {path} is not readable")
                grouped.setdefault(namespace_for(path, rules_dir), []).append(os.path.abspath(path))
    except OSError as e:
        raise LoadError(f"failed to walk rules dir {rules_dir}: {e}") from e
    return grouped


def _include_source(paths: List[str]) -> str:
    lines = []
    for path in paths:
        if '"' in path:
            raise LoadError(f"rule file path {path} contains a double quote")
        try:
            path.encode("utf-8")
        except UnicodeEncodeError:
            raise LoadError(f"rule file path {path!r} is not valid UTF-8") from None
        lines.append(f'include "{path}"')
    return "\n".join(lines) + "\n"


def load_rules(rules_dir: str, logger: logging.Logger) -> RuleSet:
    """Compile every rule file under rules_dir into one RuleSet.

    Each file is compiled into the namespace named after its parent
    directory. Files are pulled in with include directives so the engine
    reads them itself and reports errors against the real file and line.
    """
    grouped = discover_rule_files(rules_dir, logger)
    file_count = sum(len(paths) for paths in grouped.values())

    if not grouped:
        logger.warning("No rule files found in %s, serving an empty rule set", rules_dir)

    sources = {engine_namespace(ns): _include_source(paths) for ns, paths in grouped.items()}
    for ns, paths in grouped.items():
        logger.debug("Adding %d rule file(s) to namespace %r", len(paths), ns)

    try:
        if sources:
            compiled = yara.compile(sources=sources)
        else:
            compiled = yara.compile(source="")
    except yara.Error as e:
        logger.error("Failed to compile rules from %s: %s", rules_dir, e)
        raise LoadError(f"failed to compile rules from {rules_dir}: {e}") from e

    # compiled rules do not carry their namespace, so enumerate each
    # namespace on its own in the same order the combined set was built
    rules = []
    for key, source in sources.items():
        try:
            part = yara.compile(sources={key: source})
        except yara.Error as e:
            raise LoadError(f"failed to compile namespace {service_namespace(key)!r}: {e}") from e
        rules.extend(Rule(service_namespace(key), r.identifier) for r in part)
    return RuleSet(compiled, rules, source_count=file_count)
