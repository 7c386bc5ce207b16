"""
Shared fixtures for the nativecall test suite.

The demo library is compiled once per session into a temporary directory.
Tests that need it are skipped when no C compiler is available.
"""

from pathlib import Path

import pytest

from nativecall import BuildError, NativeLibrary, build_extensions, load_build_description, unload_all
from nativecall._loader import LibraryLocator
from nativecall.config import ENV_BUILD_DIR, ENV_LIBRARY_PATH, ENV_LOG_LEVEL, ENV_STRICT
from nativecall.demo import SumDemo

ROOT = Path(__file__).resolve().parent.parent
DESCRIPTION = ROOT / "nativecall.toml"
HEADER = ROOT / "nativecall" / "csrc" / "sumdemo.h"


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Run every test without nativecall settings or cached lookups."""
    for name in (ENV_LIBRARY_PATH, ENV_BUILD_DIR, ENV_STRICT, ENV_LOG_LEVEL):
        monkeypatch.delenv(name, raising=False)
    LibraryLocator.reset_cache()
    yield
    unload_all()
    LibraryLocator.reset_cache()


@pytest.fixture(scope="session")
def demo_library_path(tmp_path_factory):
    """Path of the compiled demo library."""
    build_dir = tmp_path_factory.mktemp("nativecall-build")
    try:
        artifacts = build_extensions(load_build_description(DESCRIPTION), build_dir=build_dir)
    except BuildError as e:
        pytest.skip(f"Cannot compile the demo library: {e.message}")
    return artifacts["sumdemo"]


@pytest.fixture
def demo_library(demo_library_path):
    """A freshly loaded handle to the demo library."""
    library = NativeLibrary(demo_library_path, strict=True).load()
    yield library
    library.release()


@pytest.fixture
def demo(demo_library):
    """SumDemo bound from the demo header, with its call counter reset."""
    wrapper = SumDemo(demo_library)
    wrapper.reset_calls()
    return wrapper
