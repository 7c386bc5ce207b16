"""
Declarative native builds.

A build description is a TOML file that lists the extensions to compile.
Each extension names its C sources and compiles into exactly one shared
artifact:

    build_dir = "build/nativecall"

    [[extension]]
    name = "sumdemo"
    sources = ["nativecall/csrc/sumdemo.c"]
    include_dirs = ["nativecall/csrc"]

Relative paths are resolved against the directory of the description file.
Compilation goes through setuptools' build_ext, so the platform compiler and
flags are the same ones pip would use. The artifact's file name carries the
interpreter's extension suffix (for example
'sumdemo.cpython-312-x86_64-linux-gnu.so'), so callers locate it with
find_artifact() instead of hard-coding it.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from nativecall._loader import find_artifact
from nativecall.config import DEFAULT_BUILD_DIR
from nativecall.exceptions import BuildError

logger = logging.getLogger(__name__)

VALID_TOP_LEVEL_KEYS = {"build_dir", "extension"}
VALID_EXTENSION_KEYS = {
    "name", "sources", "include_dirs", "library_dirs", "libraries",
    "define_macros", "extra_compile_args", "extra_link_args",
}


@dataclass
class ExtensionSpec:
    """One shared artifact and the sources it is compiled from."""
    name: str
    sources: List[str]
    include_dirs: List[str] = field(default_factory=list)
    library_dirs: List[str] = field(default_factory=list)
    libraries: List[str] = field(default_factory=list)
    define_macros: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    extra_compile_args: List[str] = field(default_factory=list)
    extra_link_args: List[str] = field(default_factory=list)

    def to_extension(self) -> Any:
        """Return the equivalent setuptools Extension."""
        from setuptools import Extension

        return Extension(
            self.name,
            sources=list(self.sources),
            include_dirs=list(self.include_dirs),
            library_dirs=list(self.library_dirs),
            libraries=list(self.libraries),
            define_macros=list(self.define_macros),
            extra_compile_args=list(self.extra_compile_args),
            extra_link_args=list(self.extra_link_args),
        )


@dataclass
class BuildDescription:
    """Parsed build description.

    Attributes:
        extensions: Extensions to compile, in declaration order
        build_dir: Output directory for artifacts
        base_dir: Directory that relative paths were resolved against
    """
    extensions: List[ExtensionSpec]
    build_dir: str = DEFAULT_BUILD_DIR
    base_dir: str = "."

    def get(self, name: str) -> ExtensionSpec:
        for ext in self.extensions:
            if ext.name == name:
                return ext
        raise BuildError(f"No extension named {name!r} in build description", extension=name)

    @property
    def names(self) -> List[str]:
        return [ext.name for ext in self.extensions]

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Union[str, Path] = ".") -> "BuildDescription":
        """
        Validate and build a description from parsed TOML data.

        Raises:
            BuildError: On unknown keys, missing names or sources, or
                duplicate extension names
        """
        base = Path(base_dir)

        unknown = set(data) - VALID_TOP_LEVEL_KEYS
        if unknown:
            raise BuildError(
                f"Unknown key(s) in build description: {', '.join(sorted(unknown))}",
                suggestion=f"Valid keys: {', '.join(sorted(VALID_TOP_LEVEL_KEYS))}",
            )

        raw_extensions = data.get("extension")
        if not raw_extensions or not isinstance(raw_extensions, list):
            raise BuildError(
                "Build description declares no [[extension]] tables",
                suggestion="Add at least one [[extension]] with a name and sources.",
            )

        extensions = []
        seen = set()
        for index, raw in enumerate(raw_extensions):
            ext = _parse_extension(raw, index, base)
            if ext.name in seen:
                raise BuildError(f"Duplicate extension name: {ext.name}", extension=ext.name)
            seen.add(ext.name)
            extensions.append(ext)

        build_dir = data.get("build_dir", DEFAULT_BUILD_DIR)
        if not isinstance(build_dir, str) or not build_dir:
            raise BuildError("build_dir must be a non-empty string")

        return cls(
            extensions=extensions,
            build_dir=str(base / build_dir),
            base_dir=str(base),
        )


def _string_list(raw: Dict[str, Any], key: str, name: str) -> List[str]:
    value = raw.get(key, [])
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise BuildError(f"{key} of extension {name!r} must be a list of strings", extension=name)
    return value


def _parse_extension(raw: Any, index: int, base: Path) -> ExtensionSpec:
    if not isinstance(raw, dict):
        raise BuildError(f"Extension #{index} must be a table")

    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise BuildError(f"Extension #{index} has no name")

    unknown = set(raw) - VALID_EXTENSION_KEYS
    if unknown:
        raise BuildError(
            f"Unknown key(s) in extension {name!r}: {', '.join(sorted(unknown))}",
            extension=name,
            suggestion=f"Valid keys: {', '.join(sorted(VALID_EXTENSION_KEYS))}",
        )

    sources = _string_list(raw, "sources", name)
    if not sources:
        raise BuildError(f"Extension {name!r} lists no sources", extension=name)

    macros = []
    for macro in raw.get("define_macros", []):
        if isinstance(macro, str):
            macros.append((macro, None))
        elif isinstance(macro, list) and len(macro) == 2 and isinstance(macro[0], str):
            macros.append((macro[0], None if macro[1] is None else str(macro[1])))
        else:
            raise BuildError(
                f"Invalid define_macros entry {macro!r} in extension {name!r}",
                extension=name,
                suggestion='Use "NAME" or ["NAME", "VALUE"].',
            )

    def resolve(paths: List[str]) -> List[str]:
        return [str(base / p) for p in paths]

    return ExtensionSpec(
        name=name,
        sources=resolve(sources),
        include_dirs=resolve(_string_list(raw, "include_dirs", name)),
        library_dirs=resolve(_string_list(raw, "library_dirs", name)),
        libraries=_string_list(raw, "libraries", name),
        define_macros=macros,
        extra_compile_args=_string_list(raw, "extra_compile_args", name),
        extra_link_args=_string_list(raw, "extra_link_args", name),
    )


def load_build_description(path: Union[str, Path]) -> BuildDescription:
    """
    Load a TOML build description.

    Args:
        path: Path to the description file

    Returns:
        BuildDescription with paths resolved against the file's directory

    Raises:
        BuildError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise BuildError(f"Build description not found: {path}")

    try:
        import tomllib
    except ImportError:
        try:
            import tomli as tomllib
        except ImportError:
            raise BuildError(
                "TOML parser not available",
                suggestion="Install tomli: pip install tomli",
            ) from None

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise BuildError(f"TOML parse error in {path}: {e}") from e

    description = BuildDescription.from_dict(data, base_dir=path.parent)
    logger.debug(f"Loaded build description {path}: {description.names}")
    return description


def _build_ext_class() -> Any:
    from setuptools.command.build_ext import build_ext

    class SharedLibraryBuildExt(build_ext):
        """build_ext for plain C libraries that are loaded with ctypes.

        The artifacts have no PyInit_<name> entry point, so none is exported.
        """

        def get_export_symbols(self, ext):
            return ext.export_symbols

    return SharedLibraryBuildExt


def build_extensions(
    description: BuildDescription,
    build_dir: Optional[Union[str, Path]] = None,
    names: Optional[List[str]] = None,
    force: bool = False,
) -> Dict[str, str]:
    """
    Compile extensions of a build description into shared artifacts.

    Args:
        description: Parsed build description
        build_dir: Output directory (defaults to description.build_dir)
        names: Build only these extensions (defaults to all)
        force: Rebuild even if the artifact is newer than its sources

    Returns:
        Mapping of extension name to artifact path

    Raises:
        BuildError: If a source is missing or compilation/linking fails
    """
    from setuptools import Distribution
    from setuptools.errors import BaseError, CCompilerError

    out_dir = Path(build_dir or description.build_dir)
    specs = [description.get(n) for n in names] if names else list(description.extensions)

    for spec in specs:
        for source in spec.sources:
            if not os.path.isfile(source):
                raise BuildError(f"Source file not found: {source}", extension=spec.name)

    extensions = [spec.to_extension() for spec in specs]
    cmdclass = _build_ext_class()

    dist = Distribution({"name": "nativecall-build", "ext_modules": extensions})
    dist.cmdclass["build_ext"] = cmdclass
    options = dist.get_option_dict("build_ext")
    options["build_lib"] = ("nativecall", str(out_dir))
    options["build_temp"] = ("nativecall", str(out_dir / "temp"))
    options["force"] = ("nativecall", force)

    logger.info(f"Building {', '.join(s.name for s in specs)} into {out_dir}")
    try:
        dist.run_command("build_ext")
    except (CCompilerError, BaseError) as e:
        raise BuildError(
            f"Build failed: {e}",
            extension=", ".join(s.name for s in specs),
        ) from e

    cmd = dist.get_command_obj("build_ext")
    artifacts = {}
    for spec in specs:
        artifact = str(Path(cmd.get_ext_fullpath(spec.name)).absolute())
        artifacts[spec.name] = artifact
        logger.info(f"Built {spec.name}: {artifact}")
    return artifacts


def build_from_file(path: Union[str, Path], build_dir: Optional[Union[str, Path]] = None,
                    force: bool = False) -> Dict[str, str]:
    """Load a build description and compile all of its extensions."""
    return build_extensions(load_build_description(path), build_dir=build_dir, force=force)


def locate(description: BuildDescription, name: str) -> str:
    """Return the artifact path of extension `name` in the description's build dir.

    Raises:
        LoadError: If the extension has not been built
    """
    description.get(name)
    return find_artifact(description.build_dir, name)
