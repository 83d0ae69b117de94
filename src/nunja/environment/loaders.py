"""Template loaders for the nunja environment.

Loaders provide template source to the Environment. They implement
`get_source(environment, name)` returning `(source, filename, uptodate)`:

    - ``source``: the template source
    - ``filename``: path used in tracebacks and error messages, or None
    - ``uptodate``: callable returning False once the source changed, or
      None when the source never changes; consulted with ``auto_reload``

Built-in Loaders:
- `FileSystemLoader`: Load from filesystem directories
- `DictLoader`: Load from in-memory dictionary (testing/embedded)
- `ChoiceLoader`: Try multiple loaders in order (theme fallback)
- `PrefixLoader`: Namespace templates by prefix (plugin architectures)
- `PackageLoader`: Load from installed Python packages (importlib.resources)
- `FunctionLoader`: Wrap a callable as a loader (quick one-offs)

Custom Loaders:
Subclass `BaseLoader`:
    ```python
    class DatabaseLoader(BaseLoader):
        def get_source(self, environment, name):
            row = db.query("SELECT source FROM templates WHERE name = ?", name)
            if not row:
                raise TemplateNotFoundError(name)
            return row.source, f"db://{name}", None

        def list_templates(self):
            return [r.name for r in db.query("SELECT name FROM templates")]
    ```

"""

from __future__ import annotations

import importlib.resources
import logging
import os
import posixpath
from collections.abc import Callable, Iterable, MutableMapping
from difflib import get_close_matches
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from nunja.environment.exceptions import TemplateNotFoundError

if TYPE_CHECKING:
    from nunja.environment.core import Environment
    from nunja.template import Template

logger = logging.getLogger(__name__)

SourceTuple = tuple[str, str | None, Callable[[], bool] | None]


def split_template_path(template: str) -> list[str]:
    """Split a template name on ``/`` into segments, refusing ``..``.

    Raises:
        TemplateNotFoundError: A segment would escape the search path
    """
    pieces = []
    for piece in template.split("/"):
        if os.path.sep in piece or (os.path.altsep and os.path.altsep in piece) or piece == os.path.pardir:
            raise TemplateNotFoundError(template)
        if piece and piece != ".":
            pieces.append(piece)
    return pieces


class BaseLoader:
    """Base class for loaders.

    Subclasses implement `get_source`; `load` compiles the source into a
    `Template`. Loaders with ``has_source_access = False`` (precompiled
    sources) override `load` instead.
    """

    has_source_access = True

    def get_source(self, environment: Environment, name: str) -> SourceTuple:
        """Return ``(source, filename, uptodate)`` for template ``name``.

        Raises:
            TemplateNotFoundError: If the template does not exist
        """
        if not self.has_source_access:
            raise RuntimeError(f"{type(self).__name__} cannot provide access to the source")
        raise TemplateNotFoundError(name)

    def list_templates(self) -> list[str]:
        """Names of all templates this loader knows, sorted."""
        raise TypeError("this loader cannot iterate over all templates")

    def load(
        self,
        environment: Environment,
        name: str,
        globals: MutableMapping[str, Any] | None = None,
    ) -> Template:
        """Load and compile template ``name``."""
        if globals is None:
            globals = {}

        source, filename, uptodate = self.get_source(environment, name)
        code = environment.compile(source, name, filename)
        return environment.template_class.from_code(environment, code, globals, uptodate, source)


class FileSystemLoader(BaseLoader):
    """Load templates from filesystem directories.

    Searches one or more directories for templates by name. The first matching
    file is returned. Supports arbitrary directory structures and file nesting.

    Search Order:
        Directories are searched in order. First match wins:
            ```python
            loader = FileSystemLoader(["themes/custom/", "themes/default/"])
            # Looks in themes/custom/ first, then themes/default/
            ```

    Example:
            >>> loader = FileSystemLoader("templates/")
            >>> source, filename, uptodate = loader.get_source(env, "pages/about.html")
            >>> print(filename)
            'templates/pages/about.html'

            >>> loader = FileSystemLoader(["site/", "shared/"])
            >>> loader.list_templates()
        ['base.html', 'components/card.html', 'pages/home.html']

    Raises:
        TemplateNotFoundError: If template not found in any search path

    """

    def __init__(
        self,
        searchpath: str | os.PathLike[str] | Iterable[str | os.PathLike[str]],
        encoding: str = "utf-8",
        followlinks: bool = False,
    ):
        if isinstance(searchpath, (str, os.PathLike)):
            searchpath = [searchpath]
        self.searchpath = [Path(p) for p in searchpath]
        self.encoding = encoding
        self.followlinks = followlinks

    def get_source(self, environment: Environment, name: str) -> SourceTuple:
        """Load template source from the filesystem.

        The ``uptodate`` callable compares the file's modification time with
        the one seen at load time.
        """
        pieces = split_template_path(name)
        for base in self.searchpath:
            path = base.joinpath(*pieces)
            if path.is_file():
                break
        else:
            logger.debug("template %r not found in %s", name, self.searchpath)
            raise TemplateNotFoundError(
                name,
                f"Template '{name}' not found in: {', '.join(str(p) for p in self.searchpath)}",
            )

        source = path.read_text(self.encoding)
        filename = str(path)
        mtime = path.stat().st_mtime

        def uptodate() -> bool:
            try:
                return path.stat().st_mtime == mtime
            except OSError:
                return False

        return source, os.path.normpath(filename), uptodate

    def list_templates(self) -> list[str]:
        """List all templates in search paths."""
        found = set()
        for base in self.searchpath:
            for dirpath, _, filenames in os.walk(base, followlinks=self.followlinks):
                for filename in filenames:
                    template = os.path.join(dirpath, filename)[len(str(base)) :].strip(os.path.sep)
                    found.add(template.replace(os.path.sep, "/"))
        return sorted(found)


class DictLoader(BaseLoader):
    """Load templates from an in-memory dictionary.

    Maps template names to source strings. Useful for testing, embedded
    templates, or dynamically generated templates.

    Note:
        Returns `None` as filename since templates are not file-backed.
        A template counts as up to date while the mapping holds the same
        source.

    Example:
            >>> loader = DictLoader({
            ...     "base.html": "<html>{% block content %}{% endblock %}</html>",
            ...     "page.html": "{% extends 'base.html' %}{% block content %}Hi{% endblock %}",
            ... })
            >>> env = Environment(loader=loader)
            >>> env.get_template("page.html").render()
            '<html>Hi</html>'

    Raises:
        TemplateNotFoundError: If template name not in mapping

    """

    def __init__(self, mapping: MutableMapping[str, str]):
        self.mapping = mapping

    def get_source(self, environment: Environment, name: str) -> SourceTuple:
        if name not in self.mapping:
            available = sorted(self.mapping.keys())
            msg = f"Template '{name}' not found"
            matches = get_close_matches(name, available, n=1, cutoff=0.6)
            if matches:
                msg += f". Did you mean '{matches[0]}'?"
            elif available:
                msg += f". Available: {', '.join(available[:10])}"
                if len(available) > 10:
                    msg += f" ... ({len(available)} total)"
            logger.debug("template %r not in mapping", name)
            raise TemplateNotFoundError(name, msg)
        source = self.mapping[name]
        return source, None, lambda: source == self.mapping.get(name)

    def list_templates(self) -> list[str]:
        return sorted(self.mapping.keys())


class FunctionLoader(BaseLoader):
    """Wrap a callable as a template loader.

    The simplest way to create a custom loader. Pass a function that takes
    a template name and returns the source (or ``None`` if not found).

    The function can return either:
        - ``str``: Template source.
        - ``tuple``: ``(source, filename, uptodate)`` as from `get_source`.
        - ``None``: Template not found (raises ``TemplateNotFoundError``).

    Example:
            >>> def load(name):
            ...     if name == "greeting.html":
            ...         return "Hello, {{ name }}!"
            ...     return None
            >>> env = Environment(loader=FunctionLoader(load))
            >>> env.get_template("greeting.html").render(name="World")
            'Hello, World!'

    """

    def __init__(
        self,
        load_func: Callable[[str], str | SourceTuple | None],
    ):
        self.load_func = load_func

    def get_source(self, environment: Environment, name: str) -> SourceTuple:
        """Call the load function and normalize the result."""
        result = self.load_func(name)

        if result is None:
            raise TemplateNotFoundError(name)

        if isinstance(result, str):
            return result, None, None

        return result


class PrefixLoader(BaseLoader):
    """Namespace templates by prefix, delegating to per-prefix loaders.

    Template names are split on a delimiter (default ``/``) and the first
    segment is used to select the appropriate loader.

    Example:
            >>> loader = PrefixLoader({
            ...     "app": FileSystemLoader("templates/app/"),
            ...     "shared": DictLoader({"header.html": "<header>Shared</header>"}),
            ... })
            >>> env = Environment(loader=loader)
            >>> env.get_template("shared/header.html").render()
            '<header>Shared</header>'

    Raises:
        TemplateNotFoundError: If prefix not found or template not in loader
    """

    def __init__(self, mapping: dict[str, BaseLoader], delimiter: str = "/"):
        self.mapping = mapping
        self.delimiter = delimiter

    def get_loader(self, template: str) -> tuple[BaseLoader, str]:
        try:
            prefix, name = template.split(self.delimiter, 1)
            loader = self.mapping[prefix]
        except (ValueError, KeyError) as e:
            raise TemplateNotFoundError(
                template,
                f"Template '{template}': no loader for its prefix. "
                f"Available prefixes: {', '.join(sorted(self.mapping))}",
            ) from e
        return loader, name

    def get_source(self, environment: Environment, name: str) -> SourceTuple:
        """Split name on delimiter, look up prefix, delegate to loader."""
        loader, local_name = self.get_loader(name)
        try:
            return loader.get_source(environment, local_name)
        except TemplateNotFoundError as e:
            # Report the full name, not the one without prefix.
            raise TemplateNotFoundError(name) from e

    def load(
        self,
        environment: Environment,
        name: str,
        globals: MutableMapping[str, Any] | None = None,
    ) -> Template:
        loader, local_name = self.get_loader(name)
        try:
            return loader.load(environment, local_name, globals)
        except TemplateNotFoundError as e:
            raise TemplateNotFoundError(name) from e

    def list_templates(self) -> list[str]:
        """List all templates across all prefixes, with prefix prepended."""
        result = []
        for prefix, loader in self.mapping.items():
            result.extend(f"{prefix}{self.delimiter}{name}" for name in loader.list_templates())
        return sorted(result)


class ChoiceLoader(BaseLoader):
    """Try multiple loaders in order, returning the first match.

    Useful for theme fallback patterns where a custom theme overrides
    a subset of templates and the default theme provides the rest.

    Example:
            >>> custom = DictLoader({"nav.html": "<nav>Custom</nav>"})
            >>> default = DictLoader({
            ...     "nav.html": "<nav>Default</nav>",
            ...     "footer.html": "<footer>Default</footer>",
            ... })
            >>> env = Environment(loader=ChoiceLoader([custom, default]))
            >>> env.get_template("nav.html").render()     # from custom
            '<nav>Custom</nav>'
            >>> env.get_template("footer.html").render()  # from default
            '<footer>Default</footer>'

    Raises:
        TemplateNotFoundError: If no loader can find the template
    """

    def __init__(self, loaders: Iterable[BaseLoader]):
        self.loaders = list(loaders)

    def get_source(self, environment: Environment, name: str) -> SourceTuple:
        """Try each loader in order, return first match."""
        for loader in self.loaders:
            try:
                return loader.get_source(environment, name)
            except TemplateNotFoundError:
                pass
        raise TemplateNotFoundError(
            name, f"Template '{name}' not found in any of {len(self.loaders)} loaders"
        )

    def load(
        self,
        environment: Environment,
        name: str,
        globals: MutableMapping[str, Any] | None = None,
    ) -> Template:
        for loader in self.loaders:
            try:
                return loader.load(environment, name, globals)
            except TemplateNotFoundError:
                pass
        raise TemplateNotFoundError(
            name, f"Template '{name}' not found in any of {len(self.loaders)} loaders"
        )

    def list_templates(self) -> list[str]:
        """Merge template lists from all loaders (deduplicated, sorted)."""
        found: set[str] = set()
        for loader in self.loaders:
            found.update(loader.list_templates())
        return sorted(found)


class PackageLoader(BaseLoader):
    """Load templates from an installed Python package.

    Uses ``importlib.resources`` to locate template files inside a package's
    directory tree, so pip-installable packages can ship templates without
    knowing their installation path.

    Example:
            >>> # my_app/templates/base.html, my_app/templates/pages/index.html
            >>> env = Environment(loader=PackageLoader("my_app", "templates"))
            >>> env.get_template("pages/index.html")

    Args:
        package_name: Dotted Python package name (e.g. ``"my_app"``)
        package_path: Subdirectory within the package for templates
        encoding: File encoding

    Raises:
        TemplateNotFoundError: If template not found in package
        ModuleNotFoundError: If ``package_name`` is not installed
    """

    def __init__(
        self,
        package_name: str,
        package_path: str = "templates",
        encoding: str = "utf-8",
    ):
        self.package_name = package_name
        self.package_path = posixpath.normpath(package_path).rstrip("/")
        self.encoding = encoding

    def _get_root(self) -> Traversable:
        """Get the traversable root for the template directory."""
        root = importlib.resources.files(self.package_name)
        for part in self.package_path.split("/"):
            if part and part != ".":
                root = root.joinpath(part)
        return root

    def get_source(self, environment: Environment, name: str) -> SourceTuple:
        """Load template source from package resources."""
        resource = self._get_root()
        for piece in split_template_path(name):
            resource = resource.joinpath(piece)

        try:
            source = resource.read_text(self.encoding)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            logger.debug("template %r not in package %s", name, self.package_name)
            raise TemplateNotFoundError(
                name,
                f"Template '{name}' not found in package '{self.package_name}/{self.package_path}'",
            ) from e

        filename = f"{self.package_name}/{self.package_path}/{name}"
        return source, filename, None

    def list_templates(self) -> list[str]:
        """List all templates in the package directory."""
        return sorted(self._walk(self._get_root(), ""))

    def _walk(self, traversable: Traversable, prefix: str) -> list[str]:
        """Recursively walk a traversable, collecting file paths."""
        templates: list[str] = []
        if not traversable.is_dir():
            return templates
        for item in traversable.iterdir():
            name = f"{prefix}/{item.name}" if prefix else item.name
            if item.is_file() and not item.name.startswith("."):
                templates.append(name)
            elif item.is_dir() and not item.name.startswith((".", "__")):
                templates.extend(self._walk(item, name))
        return templates
