# remote.py
import logging

import requests

LOCAL_URL = "http://localhost:{port}{path}"


def check_health(port: int, logger: logging.Logger, timeout: float = 5) -> bool:
    """Probe a running instance on this host."""
    try:
        r = requests.get(LOCAL_URL.format(port=port, path="/health"), timeout=timeout)
    except requests.RequestException as e:
        logger.error("Health check against port %d failed: %s", port, e)
        return False

    if r.status_code != 200:
        logger.error("Health check against port %d got HTTP %d: %s", port, r.status_code, r.text[:200])
        return False
    return True


def set_remote_log_level(port: int, level: str, logger: logging.Logger, timeout: float = 5) -> bool:
    """Ask a running instance on this host to switch its log level."""
    try:
        r = requests.put(
            LOCAL_URL.format(port=port, path="/logging"),
            json={"level": level},
            timeout=timeout,
        )
    except requests.RequestException as e:
        logger.error("Setting remote log level on port %d failed: %s", port, e)
        return False

    if not r.ok:
        logger.error("Setting remote log level on port %d got HTTP %d: %s", port, r.status_code, r.text[:200])
        return False

    logger.info("Remote log level set to %s", level)
    return True
