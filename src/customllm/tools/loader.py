from __future__ import annotations

import importlib
import importlib.util
import logging
from pathlib import Path
from types import ModuleType

from customllm.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_TOOLS_FILE = "customllm_tools.py"


def _import_target(target: str) -> ModuleType:
    path = Path(target)
    if path.suffix == ".py":
        spec = importlib.util.spec_from_file_location(f"customllm_external_{path.stem}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load tools from {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return importlib.import_module(target)


def load_external_tools(registry: ToolRegistry, target: str | Path | None = None) -> bool:
    """Let a user module add tools through its ``register(registry)`` function.

    Without an explicit target, ``customllm_tools.py`` in the working directory
    is used when it exists. Failures are logged, never raised.
    """
    if target is None:
        default_path = Path.cwd() / DEFAULT_TOOLS_FILE
        if not default_path.exists():
            return False
        target = default_path
    target_str = str(target)
    if target_str.endswith(".py") and not Path(target_str).exists():
        logger.warning("tool module %s does not exist", target_str)
        return False

    try:
        module = _import_target(target_str)
    except Exception:  # noqa: BLE001
        logger.exception("failed to import tool module %s", target_str)
        return False

    register = getattr(module, "register", None)
    if not callable(register):
        logger.warning("tool module %s does not define register(registry)", target_str)
        return False
    try:
        register(registry)
    except Exception:  # noqa: BLE001
        logger.exception("tool module %s failed while registering tools", target_str)
        return False
    logger.info("loaded custom tool handlers from %s", target_str)
    return True
