"""
Platform detection and shared library loader for nativecall.

This module knows how shared libraries are named on each platform, how to
find a compiled artifact inside a build directory whose exact file name
depends on the interpreter version, and how to open a library with ctypes
while turning every failure into a LoadError.

The locator caches the first successful discovery per library name behind a
lock, so repeated lookups from several threads do not rescan the disk. Entries are keyed by
name together with the settings that steer the search.
"""

import ctypes
import importlib.machinery
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from nativecall.config import ENV_LIBRARY_PATH, Settings
from nativecall.exceptions import LoadError

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def platform_machine() -> str:
    """
    Return the machine architecture.

    This is a wrapper around platform.machine() that can be mocked in tests.
    """
    import platform

    return platform.machine()


def get_platform_tag() -> str:
    """
    Return a platform identifier for the current system.

    Returns:
        One of 'macos_x86_64', 'macos_arm64', 'linux_x86_64', 'linux_arm64',
        'windows_x86_64' or 'windows_arm64'

    Raises:
        LoadError: If the platform is not supported
    """
    system = sys.platform.lower()
    machine = platform_machine()

    if machine in ("x86_64", "AMD64", "amd64"):
        arch = "x86_64"
    elif machine in ("arm64", "aarch64", "ARM64"):
        arch = "arm64"
    else:
        raise LoadError(
            f"Unsupported architecture: {machine}",
            platform=f"{system}/{machine}",
            suggestion="nativecall supports x86_64 and ARM64 machines.",
        )

    if system == "darwin":
        return f"macos_{arch}"
    elif system.startswith("linux"):
        return f"linux_{arch}"
    elif system in ("win32", "cygwin"):
        return f"windows_{arch}"
    raise LoadError(
        f"Unsupported platform: {system}",
        platform=system,
        suggestion="nativecall supports Linux, macOS and Windows.",
    )


def get_shared_library_suffix() -> str:
    """Return the plain shared library suffix for the current platform."""
    system = sys.platform.lower()
    if system == "darwin":
        return ".dylib"
    elif system in ("win32", "cygwin"):
        return ".dll"
    return ".so"


def get_library_patterns(name: str) -> List[str]:
    """
    Return glob patterns that match a compiled artifact called `name`.

    setuptools names the artifact with the interpreter's extension suffix
    (e.g. 'sumdemo.cpython-312-x86_64-linux-gnu.so'); a hand-built library
    usually carries the plain platform suffix, with or without a 'lib' prefix.

    Args:
        name: Extension name without suffix

    Returns:
        List of glob patterns, most specific first
    """
    patterns = [f"{name}{suffix}" for suffix in importlib.machinery.EXTENSION_SUFFIXES]
    plain = get_shared_library_suffix()
    # Anchored on the dot so 'sum' never matches 'sumdemo.so'
    patterns.append(f"{name}{plain}")
    patterns.append(f"{name}.*{plain}")
    patterns.append(f"lib{name}{plain}")
    # Remove duplicates while preserving order
    seen = set()
    unique = []
    for pattern in patterns:
        if pattern not in seen:
            unique.append(pattern)
            seen.add(pattern)
    return unique


def find_artifact(build_dir: PathLike, name: str, recursive: bool = True) -> str:
    """
    Find the compiled artifact for extension `name` under `build_dir`.

    The directory is searched recursively unless told otherwise; when several
    files match, the most recently modified one wins.

    Args:
        build_dir: Build output directory
        name: Extension name without suffix
        recursive: Search subdirectories too (False: top level only)

    Returns:
        Absolute path to the artifact

    Raises:
        LoadError: If nothing matches
    """
    root = Path(build_dir)
    patterns = get_library_patterns(name)

    if not root.is_dir():
        raise LoadError(
            f"Build directory does not exist: {root}",
            path=str(root),
            suggestion="Run `nativecall build` first.",
        )

    matches: List[Path] = []
    for pattern in patterns:
        found = root.rglob(pattern) if recursive else root.glob(pattern)
        matches.extend(p for p in found if p.is_file())

    if not matches:
        logger.debug(f"No artifact for {name!r} in {root} (patterns: {patterns})")
        raise LoadError(
            f"No compiled artifact named {name!r} found in {root}",
            search_paths=[str(root / p) for p in patterns],
            suggestion="Run `nativecall build` to compile the extension.",
        )

    newest = max(matches, key=lambda p: p.stat().st_mtime)
    logger.debug(f"Found artifact for {name!r}: {newest}")
    return str(newest.absolute())


def open_library(path: PathLike) -> ctypes.CDLL:
    """
    Open a shared library with ctypes.

    Args:
        path: Filesystem path to the library

    Returns:
        Loaded CDLL instance

    Raises:
        LoadError: If the path does not exist, is not a file, or the dynamic
            loader rejects it (wrong format, wrong architecture, missing
            dependencies)
    """
    path_str = os.fspath(path)
    path_obj = Path(path_str)

    if not path_obj.exists():
        logger.error(f"Shared library not found: {path_str}")
        raise LoadError(f"Shared library not found: {path_str}", path=path_str)

    if not path_obj.is_file():
        raise LoadError(f"Not a file: {path_str}", path=path_str)

    try:
        lib = ctypes.CDLL(str(path_obj.absolute()))
    except OSError as e:
        logger.error(f"Failed to load shared library {path_str}: {e}")
        raise LoadError(
            f"Could not load shared library {path_str}: {e}",
            path=path_str,
            suggestion=(
                "The file is not a shared library for this platform/architecture "
                "or one of its dependencies is missing (check with `ldd` or `otool -L`)."
            ),
        ) from e

    logger.info(f"Loaded shared library: {path_str}")
    return lib


class LibraryLocator:
    """
    Locates and caches shared library paths by extension name.

    The search order is:
    1. Environment variable: NATIVECALL_LIBRARY_PATH
    2. Build directory: {build_dir}/**/{name}.*{suffix}
    3. Installed package: {package_dir}/{name}.*{suffix}
    4. Current directory: ./{name}.*{suffix} (top level only)

    Attributes:
        _cache: Mapping of (name, library_path, build_dir) to resolved path
        _cache_lock: Thread lock for thread-safe caching
    """

    _cache: Dict[Tuple[str, Optional[str], str], str] = {}
    _cache_lock = threading.Lock()

    @classmethod
    def cache_key(cls, name: str, settings: Settings) -> Tuple[str, Optional[str], str]:
        """Cache key: the same name resolves differently under other settings."""
        return (name, settings.library_path, os.path.realpath(settings.build_dir))

    @classmethod
    def find(cls, name: str, settings: Optional[Settings] = None) -> str:
        """
        Find and return the path to the library called `name`.

        Args:
            name: Extension name without suffix
            settings: Settings to use (defaults to Settings.from_env())

        Returns:
            Absolute path to the library

        Raises:
            LoadError: If the library cannot be found in any location
        """
        settings = settings or Settings.from_env()
        key = cls.cache_key(name, settings)

        if key in cls._cache:
            logger.debug(f"Using cached path for {name!r}: {cls._cache[key]}")
            return cls._cache[key]

        with cls._cache_lock:
            # Double-check pattern after acquiring lock
            if key in cls._cache:
                return cls._cache[key]

            search_paths = []

            # Strategy 1: Environment variable
            if settings.library_path:
                search_paths.append(settings.library_path)
                if Path(settings.library_path).is_file():
                    logger.info(f"Using {ENV_LIBRARY_PATH}: {settings.library_path}")
                    cls._cache[key] = settings.library_path
                    return settings.library_path

            # Strategies 2-4: directories that may hold a compiled artifact.
            # Only the build directory is searched below its top level.
            directories = [
                (settings.build_path, True),
                (Path(__file__).parent, False),
                (Path(os.getcwd()), False),
            ]
            for directory, recursive in directories:
                search_paths.append(str(directory))
                if not directory.is_dir():
                    continue
                try:
                    found = find_artifact(directory, name, recursive=recursive)
                except LoadError:
                    continue
                logger.info(f"Found {name!r} at: {found}")
                cls._cache[key] = found
                return found

            logger.error(f"Library {name!r} not found. Searched paths: {search_paths}")
            raise LoadError(
                f"Library {name!r} not found in any of the search locations",
                search_paths=search_paths,
                platform=get_platform_tag(),
            )

    @classmethod
    def reset_cache(cls) -> None:
        """
        Reset the cached paths.

        Clears every cached path, forcing the next call to find() to perform
        a fresh search.
        """
        with cls._cache_lock:
            cls._cache.clear()
            logger.debug("Library path cache cleared")


def find_library(name: str, settings: Optional[Settings] = None) -> str:
    """
    Convenience wrapper around LibraryLocator.find().

    Raises:
        LoadError: If the library cannot be found
    """
    return LibraryLocator.find(name, settings)
