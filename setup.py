"""
nativecall setup configuration.

This module configures the installation and distribution of nativecall, a
small library and tutorial for calling C functions from Python with ctypes.

NATIVE DEMO LIBRARY
===================

The tutorial's C code (nativecall/csrc/sumdemo.c) is declared as an optional
extension. When a C compiler is available, installing the package compiles
it into nativecall/sumdemo<EXT_SUFFIX>, for example:

  - nativecall/sumdemo.cpython-312-x86_64-linux-gnu.so
  - nativecall/sumdemo.cpython-312-darwin.so
  - nativecall/sumdemo.cp312-win_amd64.pyd

The artifact is a plain C library, not a Python module: it has no
PyInit_sumdemo entry point and is opened with ctypes. Because its file name
depends on the platform and interpreter version, nativecall discovers it at
load time by pattern matching (see nativecall/_loader.py).

When no compiler is available the install still succeeds; build the library
later with:

  nativecall build
"""

import platform

from setuptools import Extension, find_packages, setup
from setuptools.command.build_ext import build_ext


class SharedLibraryBuildExt(build_ext):
    """Build plain C libraries: no PyInit_<name> symbol is exported."""

    def get_export_symbols(self, ext):
        return ext.export_symbols


def get_platform_classifiers():
    """
    Generate platform classifiers for the wheel.

    Returns:
        list: Additional classifiers for platform-specific wheels
    """
    system = platform.system().lower()

    classifiers = []

    if system == "darwin":
        classifiers.append("Operating System :: MacOS")
    elif system == "linux":
        classifiers.append("Operating System :: POSIX :: Linux")
    elif system == "windows":
        classifiers.append("Operating System :: Microsoft :: Windows")

    return classifiers


# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Base classifiers that apply to all wheels
base_classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "License :: OSI Approved :: Apache Software License",
    "Programming Language :: C",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3.9",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

# Add platform-specific classifiers
all_classifiers = base_classifiers + get_platform_classifiers()

sumdemo = Extension(
    "nativecall.sumdemo",
    sources=["nativecall/csrc/sumdemo.c"],
    include_dirs=["nativecall/csrc"],
    define_macros=[("NDEBUG", "1")],
    optional=True,
)

setup(
    name="nativecall",
    version="0.1.0",
    author="nativecall contributors",
    description="Call C functions from Python with declared, checked ctypes signatures",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples"]),
    package_data={
        "nativecall": [
            "version.txt",
            "csrc/*.c",
            "csrc/*.h",
        ],
    },
    ext_modules=[sumdemo],
    cmdclass={"build_ext": SharedLibraryBuildExt},
    classifiers=all_classifiers,
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.21",
        "setuptools>=61",
        "tomli>=1.1; python_version < '3.11'",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "black>=23.0",
            "flake8>=6.0",
            "mypy>=1.0",
            "isort>=5.0",
        ],
        "test": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
        ],
    },
    keywords="ctypes ffi native extension tutorial numpy",
    # Console script entry points for CLI
    entry_points={
        'console_scripts': [
            'nativecall=nativecall.cli:main',
        ],
    },
    # The compiled demo library is loaded from the package directory
    zip_safe=False,
)
