"""
Native inference backend discovery and loading.

Contains:
    - platform_library_names: backend and accelerator file names per platform
    - ensure_native_libraries: preload accelerator libraries best-effort and
      locate the mandatory llama.cpp backend

The llama-cpp-python package ships its own shared library, but GPU builds are
often dropped next to the application instead. When a backend is found in one
of the search directories it is loaded up front and exported through
``LLAMA_CPP_LIB_PATH`` so ``llama_cpp`` picks the same file.
"""

import ctypes
import importlib.util
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from .errors import BackendUnavailableError

logger = logging.getLogger(__name__)

LIB_PATH_ENV = "LLAMA_CPP_LIB_PATH"

_BACKEND_NAMES = {
    "win32": ("llama.dll", "libllama.dll"),
    "darwin": ("libllama.dylib",),
    "linux": ("libllama.so",),
}

_ACCELERATOR_NAMES = {
    "win32": ("cudart64_12.dll", "cublas64_12.dll", "cublasLt64_12.dll"),
    "darwin": (),
    "linux": ("libcudart.so.12", "libcublas.so.12", "libcublasLt.so.12"),
}


def platform_library_names(platform: Optional[str] = None) -> Tuple[tuple, tuple]:
    """Return ``(backend_names, accelerator_names)`` for a platform."""
    platform = platform or sys.platform
    key = "linux" if platform.startswith("linux") else platform
    return _BACKEND_NAMES.get(key, ("libllama.so",)), _ACCELERATOR_NAMES.get(key, ())


def _load_library(path: Path) -> None:
    ctypes.CDLL(str(path))


def _try_load_optional(
    name: str, search_paths: List[Path], loader: Callable[[Path], None]
) -> bool:
    for directory in search_paths:
        full_path = directory / name
        if not full_path.is_file():
            continue
        try:
            loader(full_path)
        except OSError as e:
            logger.warning("Could not load optional accelerator dependency '%s' (%s).", full_path, e)
            return False
        logger.info("Loaded accelerator dependency: %s", full_path)
        return True
    return False


def _try_load_required(
    name: str, search_paths: List[Path], loader: Callable[[Path], None]
) -> Optional[Path]:
    for directory in search_paths:
        full_path = directory / name
        if not full_path.is_file():
            continue
        try:
            loader(full_path)
        except OSError as e:
            raise BackendUnavailableError(
                f"Failed to load native library '{full_path}' ({e}).",
                attempted_paths=[str(full_path)],
            ) from e
        logger.info("Loaded native library: %s", full_path)
        return full_path
    return None


def ensure_native_libraries(
    search_paths: Iterable[str | Path],
    platform: Optional[str] = None,
    loader: Callable[[Path], None] = _load_library,
    bundled_available: Optional[Callable[[], bool]] = None,
) -> Optional[Path]:
    """Make sure a llama.cpp backend can be loaded.

    Args:
        search_paths: Directories to look in, in priority order
        platform: Override for ``sys.platform`` (tests)
        loader: Callable that loads one shared library
        bundled_available: Returns True when the Python binding ships its own
            backend; defaults to checking that ``llama_cpp`` is importable

    Returns:
        Path of the backend loaded from ``search_paths``, or None when the
        bundled backend will be used

    Raises:
        BackendUnavailableError: No backend in the search paths and none
            bundled, or a backend file exists but fails to load
    """
    directories = [Path(p) for p in search_paths]
    backend_names, accelerator_names = platform_library_names(platform)

    for name in accelerator_names:
        _try_load_optional(name, directories, loader)

    for name in backend_names:
        found = _try_load_required(name, directories, loader)
        if found is not None:
            os.environ[LIB_PATH_ENV] = str(found.parent)
            return found

    if bundled_available is None:
        bundled_available = lambda: importlib.util.find_spec("llama_cpp") is not None
    if bundled_available():
        logger.info("No backend in search paths; using the backend bundled with llama_cpp.")
        return None

    attempted = [str(d / n) for d in directories for n in backend_names]
    raise BackendUnavailableError(
        f"None of {', '.join(backend_names)} was found and llama_cpp is not installed.",
        attempted_paths=attempted,
    )
