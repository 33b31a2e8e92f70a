#!/usr/bin/env python3
"""pkgmake.py - meta-build orchestrator for autotools packages

features:

- Selects packages from a dependency graph with a small range language:
  `pkg`, `from:to`, `from:`, `:to`, `+` and `-`
- Materializes a build tree per package: symlinks to the real sources plus
  autotools scaffolding rendered from a project template
- Emits a top-level Makefile driving bootstrap/configure/build/check across
  the selected packages

class structure:

PackageDefinition
PackageIndex
Conftab

ShellCmd
    Workspace
    PackageGenerator
    PackageBuilder
    WorkspaceGenerator

TargetType
    HelpTarget
    MakeTargetType
        BootstrapTarget
        ConfigureTarget
    BuildTarget
    CheckTarget

"""

import argparse
import datetime
import itertools
import json
import logging
import os
import posixpath
import re
import shlex
import stat
import string
import subprocess
import sys
import textwrap
from collections import deque
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from functools import partial
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, Union

import jinja2

__version__ = "0.1.0"

# ----------------------------------------------------------------------------
# type aliases

Pathlike = Union[str, Path]
TemplateParams = dict[str, Any]
FileReport = tuple[str, Path]


# ----------------------------------------------------------------------------
# env helpers


def getenv(key: str, default: bool = False) -> bool:
    """convert env values such as '0', '1', 'true', 'off' to bool"""
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ----------------------------------------------------------------------------
# constants

PY_VER_MINOR = sys.version_info.minor

PACKAGE_DEFINITION_FILENAME = "autopackage.json"
PRIVATE_DIR_NAME = ".pkgmake"
PKG_DIR_NAME = "packages"
WORKSPACE_CONFIG_FILENAME = "workspace.json"
SELECTED_FILENAME = "selected"
CONFTAB_FILENAME = "conftab"

DEFAULT_BUILD_DIR = "build"
DEFAULT_MAKEFILE = "Makefile"
DEFAULT_MAKE_TARGET = "help"
DEFAULT_PACKAGE_TYPE = "library"

# file system report codes
LINKED = "L"
ADDED = "A"
UPDATED = "U"
REPLACED = "R"

# generic options listed by every autoconf-generated configure script
AUTOCONF_OPTIONS = {
    "FEATURE",
    "PACKAGE",
    "aix-soname",
    "dependency-tracking",
    "fast-install",
    "gnu-ld",
    "libtool-lock",
    "option-checking",
    "pic",
    "pkgconfigdir",
    "shared",
    "silent-rules",
    "static",
    "sysroot",
}

PACKAGE_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9+._-]*$")
PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
CONFTAB_SECTION_RE = re.compile(r"^\[([^\]]+)\]\s*$")
CONFIGURE_OPTION_RE = re.compile(
    r"^--(enable|disable|with|without)-([^\s\[=]+)([^\s]*)\s*(.*)$"
)

# ----------------------------------------------------------------------------
# envar options

DEBUG = getenv("DEBUG", default=False)
COLOR = getenv("COLOR", default=True)

# ----------------------------------------------------------------------------
# logging config


class CustomFormatter(logging.Formatter):
    """custom logging formatting class"""

    white = "\x1b[97;20m"
    grey = "\x1b[38;20m"
    green = "\x1b[32;20m"
    cyan = "\x1b[36;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"
    fmt = "%(delta)s - %(levelname)s - %(name)s.%(funcName)s - %(message)s"
    cfmt = (
        f"{white}%(delta)s{reset} - "
        f"{{}}%(levelname)s{{}} - "
        f"{white}%(name)s.%(funcName)s{reset} - "
        f"{grey}%(message)s{reset}"
    )

    FORMATS = {
        logging.DEBUG: cfmt.format(grey, reset),
        logging.INFO: cfmt.format(green, reset),
        logging.WARNING: cfmt.format(yellow, reset),
        logging.ERROR: cfmt.format(red, reset),
        logging.CRITICAL: cfmt.format(bold_red, reset),
    }

    def __init__(self, use_color: bool = COLOR) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        """custom logger formatting method"""
        if not self.use_color:
            log_fmt: str = self.fmt
        else:
            log_fmt = self.FORMATS.get(record.levelno, self.fmt)
        if PY_VER_MINOR > 10:
            duration = datetime.datetime.fromtimestamp(
                record.relativeCreated / 1000, datetime.UTC
            )
        else:
            duration = datetime.datetime.fromtimestamp(record.relativeCreated / 1000)
        record.delta = duration.strftime("%H:%M:%S")
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


strm_handler = logging.StreamHandler()
strm_handler.setFormatter(CustomFormatter())
logging.basicConfig(
    level=logging.DEBUG if DEBUG else logging.INFO,
    handlers=[strm_handler],
)


# ----------------------------------------------------------------------------
# custom exceptions


class BuildError(Exception):
    """Base exception for build errors"""

    pass


class CommandError(BuildError):
    """Exception for command execution errors"""

    pass


class ValidationError(BuildError):
    """Exception for malformed workspace or package definition files"""

    pass


class UnknownPackageError(BuildError):
    """Exception for references to undefined packages"""

    pass


class DependencyError(BuildError):
    """Exception for inconsistent package graphs"""

    pass


class TemplateSyntaxError(BuildError):
    """Exception for template texts that cannot be parsed"""

    pass


class TemplateExecutionError(BuildError):
    """Exception for template rendering failures"""

    pass


class FilesystemError(BuildError):
    """Exception for failures creating, removing, linking or writing files"""

    pass


# ----------------------------------------------------------------------------
# dataclasses


@dataclass
class FileParams:
    """One concrete pathname produced by a pathname template."""

    filename: str
    params: TemplateParams


@dataclass(frozen=True)
class FileTemplate:
    """A single file of a project or workspace template."""

    pathname: str
    mode: int
    contents: str


@dataclass
class Target:
    """One Makefile rule."""

    target: str
    phony: bool = False
    dependencies: list[str] = field(default_factory=list)
    make_script: str = ""


@dataclass
class ConfigureOption:
    """A package-specific option scraped from `configure --help`."""

    keyword: str
    option: str
    arg: str
    description: str

    def as_comment(self) -> str:
        """render as commented-out conftab lines"""
        lines = [f"# --{self.keyword}-{self.option}{self.arg}\n"]
        for line in textwrap.wrap(self.description, 68):
            lines.append(f"#     {line}\n")
        return "".join(lines)


# ----------------------------------------------------------------------------
# embedded templates

AUTOGEN_SH = """\
#!/bin/sh

set -e

mkdir -p m4
autoreconf --install --force
"""

APPLICATION_CONFIGURE_AC = """\
AC_PREREQ([2.69])
AC_INIT([{{ name }}], [{{ version }}])
AC_CONFIG_AUX_DIR([build-aux])
AC_CONFIG_MACRO_DIR([m4])
AM_INIT_AUTOMAKE([foreign subdir-objects -Wall])
AC_PROG_CC
AC_PROG_CXX
{% for req in requires %}PKG_CHECK_MODULES([{{ req | var_name_uc }}], [{{ req | lib_name }}])
{% endfor %}AC_CONFIG_FILES([Makefile])
AC_OUTPUT
"""

APPLICATION_MAKEFILE_AM = """\
{% set sources = file_list("src", "*.c") + file_list("src", "*.cc") + file_list("src", "*.h") -%}
{% if not sources %}{{ error("no sources found in 'src' of " ~ name) }}{% endif -%}
ACLOCAL_AMFLAGS = -I m4

bin_PROGRAMS = {{ name }}

{{ name | var_name }}_SOURCES ={% for f in sources %} \\
\tsrc/{{ f }}{% endfor %}

{{ name | var_name }}_CPPFLAGS ={% for req in requires %} $({{ req | var_name_uc }}_CFLAGS){% endfor %}

{{ name | var_name }}_LDADD ={% for req in requires %} $({{ req | var_name_uc }}_LIBS){% endfor %}
"""

LIBRARY_CONFIGURE_AC = """\
AC_PREREQ([2.69])
AC_INIT([{{ name }}], [{{ version }}])
AC_CONFIG_AUX_DIR([build-aux])
AC_CONFIG_MACRO_DIR([m4])
AM_INIT_AUTOMAKE([foreign subdir-objects -Wall])
AM_PROG_AR
LT_INIT
AC_PROG_CC
AC_PROG_CXX
{% for req in requires %}PKG_CHECK_MODULES([{{ req | var_name_uc }}], [{{ req | lib_name }}])
{% endfor %}AC_CONFIG_FILES([Makefile {{ name }}.pc])
AC_OUTPUT
"""

LIBRARY_MAKEFILE_AM = """\
{% set lib = name[3:] if name.startswith("lib") else name -%}
{% set la = "lib" ~ (lib | var_name) ~ "_la" -%}
ACLOCAL_AMFLAGS = -I m4

lib_LTLIBRARIES = lib{{ lib | lib_name }}.la

{{ la }}_SOURCES ={% for f in file_list("src", "*.c") + file_list("src", "*.cc") %} \\
\tsrc/{{ f }}{% endfor %}

{{ la }}_CPPFLAGS = -I$(srcdir)/include{% for req in requires %} $({{ req | var_name_uc }}_CFLAGS){% endfor %}

{{ la }}_LIBADD ={% for req in requires %} $({{ req | var_name_uc }}_LIBS){% endfor %}

include_HEADERS ={% for f in file_list("include", "*.h") %} \\
\tinclude/{{ f }}{% endfor %}

pkgconfigdir = $(libdir)/pkgconfig
pkgconfig_DATA = {{ name }}.pc
"""

LIBRARY_PC_IN = """\
{% set lib = name[3:] if name.startswith("lib") else name -%}
prefix=@prefix@
exec_prefix=@exec_prefix@
libdir=@libdir@
includedir=@includedir@

Name: {{ name }}
Description: {{ description }}
Version: @PACKAGE_VERSION@
Requires:{% for req in requires %} {{ req | lib_name }}{% endfor %}
Libs: -L${libdir} -l{{ lib | lib_name }}
Cflags: -I${includedir}
"""

BUILTIN_TEMPLATES: dict[str, tuple[FileTemplate, ...]] = {
    "application": (
        FileTemplate("autogen.sh", 0o755, AUTOGEN_SH),
        FileTemplate("configure.ac", 0o644, APPLICATION_CONFIGURE_AC),
        FileTemplate("Makefile.am", 0o644, APPLICATION_MAKEFILE_AM),
    ),
    "library": (
        FileTemplate("autogen.sh", 0o755, AUTOGEN_SH),
        FileTemplate("configure.ac", 0o644, LIBRARY_CONFIGURE_AC),
        FileTemplate("Makefile.am", 0o644, LIBRARY_MAKEFILE_AM),
        FileTemplate("{name}.pc.in", 0o644, LIBRARY_PC_IN),
    ),
}

PACKAGE_TYPES = list(BUILTIN_TEMPLATES)

MAKEFILE_TEMPLATE = """\
.PHONY: default all

default: {{ default_target }}

all: build

{% for t in targets %}{% if t.phony %}.PHONY: {{ t.target }}

{% endif %}{{ t.target }}:{% for dep in t.dependencies %} \\
\t{{ dep }}{% endfor %}
{{ t.make_script }}
{% endfor %}"""

WORKSPACE_TEMPLATE: tuple[FileTemplate, ...] = (
    FileTemplate(
        f"{PRIVATE_DIR_NAME}/{SELECTED_FILENAME}",
        0o644,
        "{% for pd in selection %}{{ pd.name }}\n{% endfor %}",
    ),
    FileTemplate(
        f"{PRIVATE_DIR_NAME}/{CONFTAB_FILENAME}",
        0o644,
        "{{ conftab.global_section.definition -}}\n"
        "{% for section in conftab.package_sections %}[{{ section.pkg_name }}]\n"
        "{{ section.definition -}}\n{% endfor %}",
    ),
    FileTemplate("{makefile}", 0o644, MAKEFILE_TEMPLATE),
)


# ----------------------------------------------------------------------------
# package graph


@dataclass(eq=False)
class PackageDefinition:
    """A managed package: its own source tree, dependency edges and
    template parameters.

    `required` and `dependent` are kept as exact inverses by `require()`.
    """

    name: str
    package_type: str
    pathname: Path
    params: TemplateParams = field(default_factory=dict)
    requires: list[str] = field(default_factory=list)
    required: list["PackageDefinition"] = field(default_factory=list, repr=False)
    dependent: list["PackageDefinition"] = field(default_factory=list, repr=False)

    @property
    def source_dir(self) -> Path:
        """directory holding the package definition file"""
        return self.pathname.parent

    def require(self, other: "PackageDefinition") -> None:
        """add the edge self -> other"""
        self.required.append(other)
        other.dependent.append(self)

    @classmethod
    def from_file(cls, pathname: Pathlike) -> "PackageDefinition":
        """Read a package definition file

        Args:
            pathname: path to an `autopackage.json` file

        Raises:
            ValidationError: If the file is unreadable or malformed
        """
        pathname = Path(os.path.abspath(pathname))
        try:
            with open(pathname, encoding="utf8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ValidationError(f"{pathname}: {e}") from e

        if not isinstance(data, dict):
            raise ValidationError(f"{pathname}: expected a JSON object")

        name = data.get("name")
        if not isinstance(name, str) or not PACKAGE_NAME_RE.match(name):
            raise ValidationError(f"{pathname}: invalid package name: {name!r}")

        package_type = data.get("type", DEFAULT_PACKAGE_TYPE)
        if package_type not in PACKAGE_TYPES:
            raise ValidationError(
                f"{pathname}: unknown package type: {package_type!r}"
            )

        requires = data.get("requires", [])
        if not isinstance(requires, list) or not all(
            isinstance(r, str) for r in requires
        ):
            raise ValidationError(f"{pathname}: 'requires' must be a list of names")

        extra = data.get("params", {})
        if not isinstance(extra, dict):
            raise ValidationError(f"{pathname}: 'params' must be an object")

        params: TemplateParams = {
            "name": name,
            "type": package_type,
            "version": str(data.get("version", "0.1")),
            "description": data.get("description", ""),
            "copyright": data.get("copyright", ""),
            "license": data.get("license", ""),
            "requires": list(requires),
            "var_name": var_name(name),
        }
        params.update(extra)

        return cls(name, package_type, pathname, params, list(requires))


class PackageIndex:
    """All known packages in dependency order plus a lookup by name."""

    def __init__(self, packages: Iterable[PackageDefinition] = ()) -> None:
        self.packages: list[PackageDefinition] = []
        self.package_by_name: dict[str, PackageDefinition] = {}
        for pd in packages:
            self.add(pd)

    def __iter__(self) -> Iterator[PackageDefinition]:
        return iter(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: object) -> bool:
        return name in self.package_by_name

    def add(self, pd: PackageDefinition) -> None:
        if pd.name in self.package_by_name:
            other = self.package_by_name[pd.name]
            raise DependencyError(
                f"duplicate package {pd.name}: {pd.pathname} and {other.pathname}"
            )
        self.packages.append(pd)
        self.package_by_name[pd.name] = pd

    def get(self, name: str) -> PackageDefinition:
        """look up a package by name or raise UnknownPackageError"""
        try:
            return self.package_by_name[name]
        except KeyError:
            raise UnknownPackageError("no such package: " + name) from None

    def link(self) -> None:
        """turn `requires` names into required/dependent edges"""
        for pd in self.packages:
            for name in pd.requires:
                if name not in self.package_by_name:
                    raise UnknownPackageError(
                        f"{pd.pathname}: no such package: {name}"
                    )
                pd.require(self.package_by_name[name])

    def sort(self) -> None:
        """Reorder packages so that each one follows everything it requires.

        Depth-first and stable: independent packages keep discovery order.
        """
        ordered: list[PackageDefinition] = []
        done: set[str] = set()

        for root in self.packages:
            if root.name in done:
                continue
            # explicit stack of (package, requirements not yet visited)
            stack = [(root, iter(root.required))]
            visiting = {root.name}
            while stack:
                pd, pending = stack[-1]
                for req in pending:
                    if req.name in done:
                        continue
                    if req.name in visiting:
                        chain = [p.name for p, _ in stack]
                        cycle = chain[chain.index(req.name) :] + [req.name]
                        raise DependencyError(
                            "circular dependency: " + " -> ".join(cycle)
                        )
                    stack.append((req, iter(req.required)))
                    visiting.add(req.name)
                    break
                else:
                    stack.pop()
                    visiting.discard(pd.name)
                    done.add(pd.name)
                    ordered.append(pd)

        self.packages = ordered

    @staticmethod
    def find_definition_files(pkgpath: Iterable[Pathlike]) -> list[Path]:
        """recursively collect package definition files, sorted per directory"""
        found = []
        for directory in pkgpath:
            if not os.path.isdir(directory):
                raise ValidationError(f"package path not found: {directory}")
            for root, dirs, files in os.walk(directory):
                dirs.sort()
                if PACKAGE_DEFINITION_FILENAME in files:
                    found.append(Path(root) / PACKAGE_DEFINITION_FILENAME)
        return found

    @classmethod
    def load(cls, pkgpath: Iterable[Pathlike]) -> "PackageIndex":
        """build the index from every definition file found in pkgpath"""
        index = cls(
            PackageDefinition.from_file(p) for p in cls.find_definition_files(pkgpath)
        )
        index.link()
        index.sort()
        return index


# ----------------------------------------------------------------------------
# selection algebra


def _closure(root: PackageDefinition, edges: str) -> Iterator[PackageDefinition]:
    """breadth-first walk from root along the `edges` attribute"""
    queue = deque([root])
    seen = {root.name}
    while queue:
        pd = queue.popleft()
        yield pd
        for other in getattr(pd, edges):
            if other.name not in seen:
                seen.add(other.name)
                queue.append(other)


def walk_required(root: PackageDefinition) -> Iterator[PackageDefinition]:
    """root and everything it transitively depends on"""
    return _closure(root, "required")


def walk_dependent(root: PackageDefinition) -> Iterator[PackageDefinition]:
    """root and everything that transitively depends on it"""
    return _closure(root, "dependent")


def resolve_selection(
    index: PackageIndex, tokens: Iterable[str]
) -> list[PackageDefinition]:
    """Evaluate a selection expression against the package index.

    Tokens are applied left to right; `+` and `-` switch between including
    and excluding, `pkg` marks a single package, `from:` marks `from` and its
    dependents, `:to` marks `to` and its requirements, and `from:to` marks
    the packages lying on a dependency path from `from` down to `to`. The
    last mark applied to a package wins.

    Returns:
        The marked packages in index order.

    Raises:
        UnknownPackageError: If a token names an undefined package
    """
    selected: dict[str, bool] = {}
    include = True

    def mark(packages: Iterable[PackageDefinition]) -> None:
        for pd in packages:
            selected[pd.name] = include

    for token in tokens:
        if token == "+":
            include = True
        elif token == "-":
            include = False
        elif ":" not in token:
            mark([index.get(token)])
        else:
            first, _, last = token.partition(":")
            if not first and not last:
                continue
            if not last:
                mark(walk_dependent(index.get(first)))
            elif not first:
                mark(walk_required(index.get(last)))
            else:
                origin = index.get(first)
                cone = {pd.name for pd in walk_required(index.get(last))}
                mark(pd for pd in walk_dependent(origin) if pd.name in cone)

    return [pd for pd in index if selected.get(pd.name)]


# ----------------------------------------------------------------------------
# pathname templates


def _is_multiplier(params: TemplateParams, name: str) -> bool:
    return isinstance(params.get(name), (list, tuple))


def _param_text(
    params: TemplateParams, elements: Iterator[str], match: "re.Match[str]"
) -> str:
    name = match.group(1)
    if name not in params:
        return match.group(0)
    if _is_multiplier(params, name):
        return next(elements)
    value = params[name]
    return value if isinstance(value, str) else str(value)


def expand_pathname_template(pathname: str, params: TemplateParams) -> list[FileParams]:
    """Substitute `{name}` placeholders in a pathname template.

    Scalar values are substituted in place. Every occurrence of a list-valued
    parameter multiplies the output by the length of the list, so a list
    named twice contributes two factors. Occurrences are expanded left to
    right, the later ones varying fastest. Every output carries its own copy
    of `params` with each list-valued name rebound to the element used at its
    last occurrence.
    """
    multipliers = [
        match.group(1)
        for match in PLACEHOLDER_RE.finditer(pathname)
        if _is_multiplier(params, match.group(1))
    ]

    result = []
    for values in itertools.product(*(params[name] for name in multipliers)):
        instance = dict(params)
        instance.update(zip(multipliers, values))
        filename = PLACEHOLDER_RE.sub(
            partial(_param_text, params, iter(values)), pathname
        )
        result.append(FileParams(filename, instance))
    return result


# ----------------------------------------------------------------------------
# template helpers

_ALNUM = frozenset(string.ascii_letters + string.digits)
_LIBNAME_CHARS = _ALNUM | {"+", "-", "."}


def var_name(arg: str) -> str:
    """sanitize for use in a build-system variable name"""
    return "".join(c if c in _ALNUM else "x" if c == "+" else "_" for c in arg)


def var_name_uc(arg: str) -> str:
    """upper-case variant of var_name"""
    return "".join(
        c.upper() if c in _ALNUM else "X" if c == "+" else "_" for c in arg
    )


def lib_name(arg: str) -> str:
    """sanitize for use as a library name"""
    return "".join(c if c in _LIBNAME_CHARS else "_" for c in arg)


def string_list(*items: str) -> list[str]:
    return list(items)


def template_error(message: str) -> str:
    """abort rendering with the given message"""
    raise TemplateExecutionError(message)


def filter_file_list(source_files: Iterable[str], root: str, pattern: str) -> list[str]:
    """Source files under `root` whose basename matches `pattern`

    Returns:
        Sorted pathnames relative to `root`.
    """
    root = root.strip("/")
    prefix = "" if root in ("", ".") else root + "/"

    filtered = []
    for source_file in source_files:
        if not source_file.startswith(prefix):
            continue
        relative = source_file[len(prefix) :]
        if fnmatchcase(posixpath.basename(relative), pattern):
            filtered.append(relative)
    return sorted(filtered)


def make_template_environment(**helpers: Callable[..., Any]) -> jinja2.Environment:
    """jinja2 environment with the sanitizers and failure helpers installed"""
    env = jinja2.Environment(
        autoescape=False,
        undefined=jinja2.StrictUndefined,
        keep_trailing_newline=True,
    )
    sanitizers = {
        "var_name": var_name,
        "var_name_uc": var_name_uc,
        "lib_name": lib_name,
    }
    env.filters.update(sanitizers)
    env.globals.update(sanitizers)
    env.globals.update(string_list=string_list, error=template_error)
    env.globals.update(helpers)
    return env


def execute_file_template(
    template: FileTemplate, params: TemplateParams, env: jinja2.Environment
) -> list[tuple[str, str]]:
    """Render a file template once per expansion of its pathname

    Args:
        template: the file template
        params: parameter mapping used for both pathname and contents
        env: environment providing the helper functions

    Returns:
        (filename, contents) pairs in expansion order

    Raises:
        TemplateSyntaxError: If the template text cannot be parsed
        TemplateExecutionError: If rendering fails
    """
    # parsed once, rendered for every expansion
    try:
        compiled = env.from_string(template.contents)
    except jinja2.TemplateSyntaxError as e:
        raise TemplateSyntaxError(
            f"{template.pathname}:{e.lineno}: {e.message}"
        ) from e

    result = []
    for fp in expand_pathname_template(template.pathname, params):
        try:
            contents = compiled.render(fp.params)
        except Exception as e:
            raise TemplateExecutionError(f"{fp.filename}: {e}") from e
        result.append((fp.filename, contents))
    return result


def load_template_dir(template_dir: Pathlike) -> list[FileTemplate]:
    """read a project-local template directory into file templates"""
    templates = []
    for path, relative in source_walk(template_dir):
        try:
            contents = path.read_text(encoding="utf8")
            mode = stat.S_IMODE(path.stat().st_mode)
        except OSError as e:
            raise FilesystemError(f"{path}: {e}") from e
        templates.append(FileTemplate(relative, mode, contents))
    return templates


def project_templates(
    package_type: str, template_dir: Optional[Pathlike] = None
) -> list[FileTemplate]:
    """project-local templates for package_type if present, else built-in"""
    if template_dir:
        local_dir = Path(template_dir) / package_type
        if local_dir.is_dir():
            return load_template_dir(local_dir)
    try:
        return list(BUILTIN_TEMPLATES[package_type])
    except KeyError:
        raise ValidationError(f"unknown package type: {package_type}") from None


# ----------------------------------------------------------------------------
# file system helpers


def _raise(error: OSError) -> None:
    raise error


def source_walk(root: Pathlike) -> Iterator[tuple[Path, str]]:
    """Yield (path, relative posix pathname) for every non-directory under
    root in sorted order, skipping the package definition file. Symlinked
    directories are yielded as files and not descended into.
    """
    root = Path(root)
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        current = Path(dirpath)
        links = [d for d in dirnames if (current / d).is_symlink()]
        dirnames[:] = sorted(d for d in dirnames if d not in links)
        for filename in sorted(filenames + links):
            path = current / filename
            relative = path.relative_to(root).as_posix()
            if relative == PACKAGE_DEFINITION_FILENAME:
                continue
            yield path, relative


def relative_if_shorter(base: Pathlike, pathname: Pathlike) -> str:
    """pathname relative to base when that spells shorter"""
    pathname = str(pathname)
    try:
        relative = os.path.relpath(pathname, base)
    except ValueError:
        return pathname
    if "/" not in relative:
        relative = "./" + relative
    return relative if len(relative) < len(pathname) else pathname


def current_executable() -> str:
    """command line re-invoking this tool"""
    argv0 = os.path.abspath(sys.argv[0])
    if argv0.endswith(".py") and not os.access(argv0, os.X_OK):
        return f"{sys.executable} {argv0}"
    return argv0


# ----------------------------------------------------------------------------
# utility classes


class ShellCmd:
    """Provides process and file handling shared by the worker classes."""

    log: logging.Logger

    def cmd(self, args: list[str], cwd: Pathlike = ".") -> None:
        """Run a command within working directory

        Args:
            args: program followed by its arguments
            cwd: Working directory for command execution

        Raises:
            CommandError: If command execution fails
        """
        self.log.info(" ".join(args))
        try:
            subprocess.check_call(args, cwd=str(cwd))
        except (subprocess.CalledProcessError, OSError) as e:
            self.log.critical("Command failed: %s", e)
            raise CommandError(f"Command failed: {' '.join(args)}") from e

    def get(self, args: list[str], cwd: Pathlike = ".") -> str:
        """get output of a command"""
        try:
            return subprocess.check_output(args, encoding="utf8", cwd=str(cwd))
        except (subprocess.CalledProcessError, OSError) as e:
            raise CommandError(f"Command failed: {' '.join(args)}") from e

    def makedirs(self, path: Pathlike, mode: int = 511, exist_ok: bool = True) -> None:
        """Recursive directory creation function"""
        try:
            os.makedirs(path, mode, exist_ok)
        except OSError as e:
            raise FilesystemError(f"{path}: {e}") from e

    def remove(self, path: Pathlike) -> None:
        """Remove a file, a symlink or an empty directory."""
        self.log.debug("Removing: %s", path)
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                os.rmdir(path)
            else:
                os.unlink(path)
        except OSError as e:
            raise FilesystemError(f"{path}: {e}") from e

    def safe_join(self, root: Pathlike, relative: str) -> Path:
        """join relative onto root, refusing pathnames that escape root"""
        normalized = posixpath.normpath(relative)
        if (
            posixpath.isabs(normalized)
            or normalized == ".."
            or normalized.startswith("../")
        ):
            raise FilesystemError(f"{relative}: pathname escapes {root}")
        return Path(root) / normalized

    def symlink(self, source: Pathlike, target: Path) -> bool:
        """Ensure target is a symlink pointing at source

        Returns:
            True if the link had to be (re)created
        """
        source = str(source)
        try:
            if target.is_symlink():
                if os.readlink(target) == source:
                    return False
                self.remove(target)
            elif os.path.lexists(target):
                self.remove(target)
            self.makedirs(target.parent)
            os.symlink(source, target)
        except OSError as e:
            raise FilesystemError(f"{target}: {e}") from e
        return True

    def write_file(self, path: Path, contents: str, mode: int) -> Optional[str]:
        """Write contents to path unless it already holds exactly that

        A missing file is added with `mode`, a regular file with different
        contents is updated in place, anything else is removed and replaced.

        Returns:
            ADDED, UPDATED, REPLACED, or None when nothing changed

        Raises:
            FilesystemError: On any I/O failure
        """
        data = contents.encode("utf8")
        status = REPLACED
        try:
            try:
                st = path.lstat()
            except FileNotFoundError:
                self.makedirs(path.parent)
                status = ADDED
            else:
                if stat.S_ISREG(st.st_mode):
                    if path.read_bytes() == data:
                        return None
                    status = UPDATED

            if status == REPLACED:
                self.remove(path)

            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError as e:
            raise FilesystemError(f"{path}: {e}") from e
        return status


# ----------------------------------------------------------------------------
# configuration


@dataclass
class ConftabSection:
    """A named block of configure definitions."""

    pkg_name: str
    definition: str = ""

    def args(self) -> list[str]:
        """configure arguments: non-comment lines, shell-split"""
        args: list[str] = []
        for line in self.definition.splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                args.extend(shlex.split(line))
        return args


@dataclass
class Conftab:
    """Configuration table: a global section plus one section per package.

    Text form::

        --prefix=/opt/local
        [libfoo]
        --enable-debug
    """

    global_section: ConftabSection = field(default_factory=lambda: ConftabSection(""))
    package_sections: list[ConftabSection] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "Conftab":
        conftab = cls()
        current = conftab.global_section
        for line in text.splitlines(keepends=True):
            match = CONFTAB_SECTION_RE.match(line)
            if match:
                name = match.group(1).strip()
                if conftab.section(name) is not None:
                    raise ValidationError(f"duplicate conftab section: [{name}]")
                current = conftab.add_section(name)
            else:
                current.definition += line
        for section in [conftab.global_section] + conftab.package_sections:
            if section.definition and not section.definition.endswith("\n"):
                section.definition += "\n"
        return conftab

    @classmethod
    def read(cls, path: Pathlike) -> "Conftab":
        """parse the conftab at path; a missing file gives an empty table"""
        try:
            with open(path, encoding="utf8") as f:
                return cls.parse(f.read())
        except FileNotFoundError:
            return cls()
        except OSError as e:
            raise FilesystemError(f"{path}: {e}") from e

    def section(self, pkg_name: str) -> Optional[ConftabSection]:
        for section in self.package_sections:
            if section.pkg_name == pkg_name:
                return section
        return None

    def add_section(self, pkg_name: str, definition: str = "") -> ConftabSection:
        section = ConftabSection(pkg_name, definition)
        self.package_sections.append(section)
        return section

    def configure_args(self, pkg_name: str) -> list[str]:
        """global arguments followed by the package's own"""
        args = self.global_section.args()
        section = self.section(pkg_name)
        if section is not None:
            args.extend(section.args())
        return args


def parse_configure_help(lines: Iterable[str]) -> list[ConfigureOption]:
    """Extract package-specific options from `configure --help` output.

    An option starts on an indented line beginning with `--enable-`,
    `--disable-`, `--with-` or `--without-`; further indented lines are
    appended to its description. Generic autoconf options are skipped.
    """
    options: list[ConfigureOption] = []
    current: Optional[ConfigureOption] = None

    for line in lines:
        line = line.rstrip()

        if not line or not line.startswith(" "):
            if current is not None:
                options.append(current)
                current = None
            continue

        line = line.lstrip(" ")

        if not line.startswith("--"):
            if current is not None:
                if current.description:
                    current.description += " "
                current.description += line
            continue

        if current is not None:
            options.append(current)
            current = None

        match = CONFIGURE_OPTION_RE.match(line)
        if match and match.group(2) not in AUTOCONF_OPTIONS:
            current = ConfigureOption(*match.groups())

    if current is not None:
        options.append(current)

    return options


# ----------------------------------------------------------------------------
# main classes


class Workspace(ShellCmd):
    """Utility class to hold workspace directory structure and settings"""

    def __init__(self, root: Optional[Pathlike] = None) -> None:
        self.root = Path(os.path.abspath(root or Path.cwd()))
        self.private = self.root / PRIVATE_DIR_NAME
        self.packages = self.private / PKG_DIR_NAME
        self.config_file = self.private / WORKSPACE_CONFIG_FILENAME
        self.selected_file = self.private / SELECTED_FILENAME
        self.conftab_file = self.private / CONFTAB_FILENAME
        self.pkgpath: list[str] = []
        self.builddir = DEFAULT_BUILD_DIR
        self.templatedir: Optional[str] = None
        self.makefile = DEFAULT_MAKEFILE
        self.default_target = DEFAULT_MAKE_TARGET
        self.log = logging.getLogger(self.__class__.__name__)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.root}'>"

    @property
    def build_dir(self) -> Path:
        """directory holding one configure/build tree per package"""
        return self.root / self.builddir

    @property
    def template_dir(self) -> Optional[Path]:
        """project-local template directory, if configured"""
        return self.root / self.templatedir if self.templatedir else None

    @property
    def pkgpath_dirs(self) -> list[Path]:
        """package search path resolved against the workspace root"""
        return [self.root / p for p in self.pkgpath]

    def package_dir(self, name: str) -> Path:
        """materialized tree of package `name`"""
        return self.packages / name

    def setup(self) -> None:
        """create the private workspace directories"""
        self.makedirs(self.packages)

    def load(self) -> "Workspace":
        """Read workspace.json

        Raises:
            ValidationError: If the file is missing or malformed
        """
        if not self.config_file.exists():
            raise ValidationError(
                f"{self.root} is not a workspace (run 'pkgmake.py init' first)"
            )
        try:
            with open(self.config_file, encoding="utf8") as f:
                cfg = json.load(f)
        except (OSError, ValueError) as e:
            raise ValidationError(f"{self.config_file}: {e}") from e
        if not isinstance(cfg, dict):
            raise ValidationError(f"{self.config_file}: expected a JSON object")

        pkgpath = cfg.get("pkgpath", [])
        if not isinstance(pkgpath, list) or not all(
            isinstance(p, str) for p in pkgpath
        ):
            raise ValidationError(f"{self.config_file}: 'pkgpath' must be a list")
        self.pkgpath = pkgpath
        self.builddir = cfg.get("builddir") or DEFAULT_BUILD_DIR
        self.templatedir = cfg.get("templatedir") or None
        self.makefile = cfg.get("makefile") or DEFAULT_MAKEFILE
        self.default_target = cfg.get("default_target") or DEFAULT_MAKE_TARGET
        self.log.debug("loaded %s", self.config_file)
        return self

    def save(self) -> None:
        """write workspace.json"""
        self.setup()
        cfg = {
            "pkgpath": self.pkgpath,
            "builddir": self.builddir,
            "templatedir": self.templatedir,
            "makefile": self.makefile,
            "default_target": self.default_target,
        }
        self.log.info("write workspace configuration to %s", self.config_file)
        try:
            with open(self.config_file, "w", encoding="utf8") as f:
                json.dump(cfg, f, indent=4)
                f.write("\n")
        except OSError as e:
            raise FilesystemError(f"{self.config_file}: {e}") from e

    def load_package_index(self) -> PackageIndex:
        index = PackageIndex.load(self.pkgpath_dirs)
        self.log.debug("found %d packages", len(index))
        return index

    def read_conftab(self) -> Conftab:
        return Conftab.read(self.conftab_file)

    def read_selection(self) -> list[str]:
        """package names of the current selection"""
        try:
            with open(self.selected_file, encoding="utf8") as f:
                return [line.strip() for line in f if line.strip()]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise FilesystemError(f"{self.selected_file}: {e}") from e

    def select(
        self,
        tokens: Sequence[str],
        bootstrap: bool = True,
        makefile: Optional[str] = None,
        default_target: Optional[str] = None,
    ) -> list[PackageDefinition]:
        """Resolve a selection and regenerate everything derived from it

        Each selected package is materialized and, if `bootstrap` is set,
        bootstrapped in selection order; the first failure aborts the run.
        Packages without a conftab section get one, seeded with the options
        their configure script advertises.
        """
        index = self.load_package_index()
        selection = resolve_selection(index, tokens)
        if not selection:
            self.log.warning("the selection is empty")

        conftab = self.read_conftab()

        for pd in selection:
            builder = PackageBuilder(pd, self)
            builder.generate()
            if bootstrap:
                builder.bootstrap()
            if conftab.section(pd.name) is None:
                options = builder.configure_options() if bootstrap else []
                conftab.add_section(
                    pd.name, "".join(opt.as_comment() for opt in options)
                )

        WorkspaceGenerator(
            self, selection, conftab, makefile=makefile, default_target=default_target
        ).process()
        return selection

    def configure(self, names: Sequence[str]) -> None:
        """configure packages using the workspace conftab"""
        index = self.load_package_index()
        conftab = self.read_conftab()
        for name in names:
            builder = PackageBuilder(index.get(name), self)
            builder.bootstrap()
            builder.configure(conftab)


class PackageGenerator(ShellCmd):
    """Materializes the build tree of one package

    Mirrors the package's sources into `package_dir` as symlinks, then
    renders every template file that no real source file shadows.
    """

    def __init__(
        self,
        package: PackageDefinition,
        package_dir: Pathlike,
        templates: Sequence[FileTemplate],
    ) -> None:
        self.package = package
        self.package_dir = Path(package_dir)
        self.templates = templates
        self.source_files: set[str] = set()
        self.reports: list[FileReport] = []
        self.log = logging.getLogger(self.__class__.__name__)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.package.name}'>"

    def report(self, status: str, path: Path) -> None:
        self.log.info("%s %s", status, path)
        self.reports.append((status, path))

    def link_source_files(self) -> set[str]:
        """symlink every source file into the package dir"""
        source_dir = Path(os.path.abspath(self.package.source_dir))
        try:
            for path, relative in source_walk(source_dir):
                self.source_files.add(relative)
                target = self.safe_join(self.package_dir, relative)
                if self.symlink(path, target):
                    self.report(LINKED, target)
        except OSError as e:
            raise FilesystemError(f"{source_dir}: {e}") from e
        return self.source_files

    def generate_build_files(self) -> None:
        """render templates not shadowed by real sources"""
        env = make_template_environment(
            file_list=partial(filter_file_list, self.source_files)
        )
        for template in self.templates:
            if template.pathname in self.source_files:
                self.log.debug("%s: provided by the package", template.pathname)
                continue
            outputs = execute_file_template(template, self.package.params, env)
            for filename, contents in outputs:
                if posixpath.normpath(filename) in self.source_files:
                    self.log.debug("%s: provided by the package", filename)
                    continue
                path = self.safe_join(self.package_dir, filename)
                status = self.write_file(path, contents, template.mode)
                if status:
                    self.report(status, path)

    def process(self) -> list[FileReport]:
        """link sources, then generate build files"""
        self.source_files = set()
        self.reports = []
        self.link_source_files()
        self.generate_build_files()
        return self.reports


def materialize(
    package: PackageDefinition,
    package_dir: Pathlike,
    template_dir: Optional[Pathlike] = None,
) -> list[FileReport]:
    """materialize the build tree of `package` into `package_dir`"""
    templates = project_templates(package.package_type, template_dir)
    return PackageGenerator(package, package_dir, templates).process()


class PackageBuilder(ShellCmd):
    """Runs the autotools steps of one selected package"""

    def __init__(self, package: PackageDefinition, workspace: Workspace) -> None:
        self.package = package
        self.workspace = workspace
        self.log = logging.getLogger(self.__class__.__name__)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} '{self.package.name}'>"

    @property
    def package_dir(self) -> Path:
        """materialized tree of the package"""
        return self.workspace.package_dir(self.package.name)

    @property
    def build_dir(self) -> Path:
        """configure/build directory of the package"""
        return self.workspace.build_dir / self.package.name

    @property
    def configure_script(self) -> Path:
        return self.package_dir / "configure"

    def generate(self) -> list[FileReport]:
        """materialize the package tree"""
        self.log.info("generating %s", self.package.name)
        return materialize(
            self.package, self.package_dir, self.workspace.template_dir
        )

    def bootstrap(self) -> None:
        """run autogen.sh unless configure already exists"""
        if os.path.lexists(self.configure_script):
            self.log.debug("%s exists: skipping bootstrap", self.configure_script)
            return
        try:
            self.cmd(["./autogen.sh"], cwd=self.package_dir)
        except CommandError as e:
            raise CommandError(f"{self.package_dir / 'autogen.sh'}: {e}") from e

    def configure_options(self) -> list[ConfigureOption]:
        """options advertised by `configure --help`"""
        output = self.get([str(self.configure_script), "--help"], cwd=self.package_dir)
        return parse_configure_help(output.splitlines())

    def configure(self, conftab: Conftab) -> None:
        """run configure in the package build directory"""
        self.makedirs(self.build_dir)
        args = conftab.configure_args(self.package.name)
        self.cmd([str(self.configure_script)] + args, cwd=self.build_dir)


# ----------------------------------------------------------------------------
# makefile targets


class TargetType:
    """Abstract family of Makefile targets"""

    name: str
    help: str

    def targets(self) -> list[Target]:
        """concrete rules contributed by this target type"""
        return []


class HelpTarget(TargetType):
    """Self-documenting listing of every target type"""

    name = "help"
    help = (
        "Display this help message. Unless overridden by the "
        "'--default-target' option, this is the default target."
    )

    def __init__(self, get_target_types: Callable[[], Sequence[TargetType]]) -> None:
        self.get_target_types = get_target_types

    def targets(self) -> list[Target]:
        script = (
            '\t@echo "Usage:"\n'
            '\t@echo "    make [target...]"\n'
            "\t@echo\n"
            '\t@echo "Global targets:"\n'
        )
        for t in self.get_target_types():
            script += f'\t@echo "    {t.name}"\n'
            for line in textwrap.wrap(t.help, 52):
                script += f'\t@echo "        {line}"\n'
            script += "\t@echo\n"

        return [Target("help", phony=True, make_script=script)]


class MakeTargetType(TargetType):
    """Target type with one rule per selected package"""

    def __init__(
        self, selection: Sequence[PackageDefinition], workspace: Workspace
    ) -> None:
        self.selection = selection
        self.workspace = workspace

    def global_target(self) -> Target:
        """phony aggregate depending on every per-package target"""
        prefix = self.name + "_"
        return Target(
            self.name,
            phony=True,
            dependencies=[prefix + pd.name for pd in self.selection],
        )


class BootstrapTarget(MakeTargetType):
    name = "bootstrap"
    help = (
        "Unconditionally regenerate the 'configure' "
        "scripts for the selected packages."
    )

    def targets(self) -> list[Target]:
        global_target = self.global_target()
        bootstrap_targets = [global_target]

        for pd, phony_name in zip(self.selection, global_target.dependencies):
            package_dir = posixpath.join(PRIVATE_DIR_NAME, PKG_DIR_NAME, pd.name)
            bootstrap_targets += [
                Target(
                    phony_name,
                    phony=True,
                    make_script=(
                        f'\t@echo "[bootstrap] {pd.name}"\n'
                        f"\t@cd {package_dir} && \\\n"
                        "\t./autogen.sh\n"
                    ),
                ),
                Target(
                    posixpath.join(package_dir, "configure"),
                    make_script=f"\t@$(MAKE) -s {phony_name}\n",
                ),
            ]

        return bootstrap_targets


class ConfigureTarget(MakeTargetType):
    name = "configure"
    help = (
        "Configure the selected packages using the "
        "current options specified in the 'conftab' file."
    )

    def __init__(
        self,
        selection: Sequence[PackageDefinition],
        workspace: Workspace,
        executable: Optional[str] = None,
    ) -> None:
        super().__init__(selection, workspace)
        self.executable = executable

    def targets(self) -> list[Target]:
        global_target = self.global_target()
        configure_targets = [global_target]

        root = self.workspace.root
        build_dir = str(self.workspace.build_dir)
        try:
            rel_build_dir = Path(os.path.relpath(build_dir, root)).as_posix()
        except ValueError:
            rel_build_dir = build_dir

        cmd = self.executable or current_executable()
        if " " not in cmd:
            cmd = relative_if_shorter(root, cmd)
        cmd = f"\t@{cmd} configure "

        for pd, phony_name in zip(self.selection, global_target.dependencies):
            script = cmd + pd.name + "\n"
            configure_targets += [
                Target(phony_name, phony=True, make_script=script),
                Target(
                    posixpath.join(rel_build_dir, pd.name, "Makefile"),
                    make_script=script,
                ),
            ]

        return configure_targets


class BuildTarget(TargetType):
    name = "build"
    help = (
        "Build (compile and link) the selected packages. "
        "For the packages that have not been configured, the "
        "configuration step will be performed automatically."
    )


class CheckTarget(TargetType):
    name = "check"
    help = "Build and run unit tests for the selected packages."


class WorkspaceGenerator(ShellCmd):
    """Renders the selection file, the conftab and the Makefile"""

    def __init__(
        self,
        workspace: Workspace,
        selection: Sequence[PackageDefinition],
        conftab: Conftab,
        makefile: Optional[str] = None,
        default_target: Optional[str] = None,
        executable: Optional[str] = None,
    ) -> None:
        self.workspace = workspace
        self.selection = selection
        self.conftab = conftab
        self.makefile = makefile or workspace.makefile or DEFAULT_MAKEFILE
        self.default_target = (
            default_target or workspace.default_target or DEFAULT_MAKE_TARGET
        )
        self.executable = executable
        self.reports: list[FileReport] = []
        self.log = logging.getLogger(self.__class__.__name__)

    def target_types(self) -> list[TargetType]:
        """the fixed, ordered set of target types"""
        target_types: list[TargetType] = []
        target_types += [
            HelpTarget(lambda: target_types),
            BootstrapTarget(self.selection, self.workspace),
            ConfigureTarget(self.selection, self.workspace, self.executable),
            BuildTarget(),
            CheckTarget(),
        ]
        return target_types

    def targets(self) -> list[Target]:
        targets: list[Target] = []
        for target_type in self.target_types():
            targets += target_type.targets()
        return targets

    def process(self) -> list[FileReport]:
        """write the workspace files"""
        params: TemplateParams = {
            "makefile": self.makefile,
            "default_target": self.default_target,
            "selection": list(self.selection),
            "conftab": self.conftab,
            "targets": self.targets(),
        }
        env = make_template_environment()
        self.reports = []
        for template in WORKSPACE_TEMPLATE:
            for filename, contents in execute_file_template(template, params, env):
                path = self.safe_join(self.workspace.root, filename)
                status = self.write_file(path, contents, template.mode)
                if status:
                    self.log.info("%s %s", status, path)
                    self.reports.append((status, path))
        return self.reports


def main(argv: Optional[Sequence[str]] = None) -> None:
    """commandline api entrypoint"""

    parser = argparse.ArgumentParser(
        prog="pkgmake.py",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="A meta-build tool for autotools packages",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(cmd_parser: argparse.ArgumentParser) -> None:
        # fmt: off
        cmd_parser.add_argument("-w", "--workspace", default=".", help="workspace directory (default: %(default)s)", metavar="DIR")
        cmd_parser.add_argument("-q", "--quiet", help="only report warnings and errors", action="store_true")
        # fmt: on

    init_cmd = subparsers.add_parser("init", help="create or update a workspace")
    add_common(init_cmd)
    opt = init_cmd.add_argument
    # fmt: off
    opt("-p", "--pkgpath", help="directories to search for packages", nargs="+", metavar="DIR")
    opt("-b", "--builddir", help="build directory (default: build)", metavar="DIR")
    opt("-t", "--templatedir", help="project-local template directory", metavar="DIR")
    opt("--makefile", help="name of the generated Makefile")
    opt("--default-target", help="default make target")
    # fmt: on

    select_cmd = subparsers.add_parser(
        "select", help="choose one or more packages to work on"
    )
    add_common(select_cmd)
    opt = select_cmd.add_argument
    # fmt: off
    opt("--no-bootstrap", help="do not run autogen.sh for the selected packages", action="store_true")
    opt("--makefile", help="name of the generated Makefile")
    opt("--default-target", help="default make target")
    opt("ranges", help="package ranges: pkg, from:to, from:, :to, + or -", nargs="+", metavar="RANGE")
    # fmt: on

    configure_cmd = subparsers.add_parser("configure", help="configure packages")
    add_common(configure_cmd)
    configure_cmd.add_argument("packages", nargs="+", metavar="PKG")

    list_cmd = subparsers.add_parser("list", help="list known packages")
    add_common(list_cmd)

    args = parser.parse_args(argv)

    if args.quiet:
        logging.getLogger().setLevel(logging.WARNING)

    log = logging.getLogger("pkgmake")
    workspace = Workspace(args.workspace)

    try:
        if args.command == "init":
            if workspace.config_file.exists():
                workspace.load()
            if args.pkgpath:
                workspace.pkgpath = args.pkgpath
            if args.builddir:
                workspace.builddir = args.builddir
            if args.templatedir:
                workspace.templatedir = args.templatedir
            if args.makefile:
                workspace.makefile = args.makefile
            if args.default_target:
                workspace.default_target = args.default_target
            workspace.save()

        elif args.command == "select":
            workspace.load()
            workspace.select(
                args.ranges,
                bootstrap=not args.no_bootstrap,
                makefile=args.makefile,
                default_target=args.default_target,
            )

        elif args.command == "configure":
            workspace.load()
            workspace.configure(args.packages)

        elif args.command == "list":
            workspace.load()
            selected = set(workspace.read_selection())
            for pd in workspace.load_package_index():
                print(("* " if pd.name in selected else "  ") + pd.name)

    except BuildError as e:
        log.critical("%s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
