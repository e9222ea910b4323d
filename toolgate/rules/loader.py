"""
Rule loader and index builder.

Loads rules from YAML files, directories, strings, or Python objects and
keeps an indexed structure for rule lookup during validation. Every source
is remembered so that ``reload()`` can rebuild the index from scratch.
"""

from typing import Any, Callable, Literal, Mapping, Optional, Sequence, Union
from dataclasses import dataclass, field
from pathlib import Path
import threading

from toolgate.rules.types import Rule, RuleIndex, RuleSet, RuleSetSettings
from toolgate.rules.schema_validator import (
    RuleSchemaError,
    SchemaViolation,
    validate_rule_set,
)
from toolgate.utils.logger import Logger


# Parses document text into Python data, e.g. ``yaml.safe_load``
RuleParser = Callable[[str], Any]

RULE_FILE_EXTENSIONS = (".yaml", ".yml")


class RuleParserNotConfiguredError(Exception):
    """Raised when rule text must be parsed but no parser was configured."""

    def __init__(self, source: str):
        super().__init__(
            f"No rule parser configured, cannot parse {source}. "
            "Pass a parser such as yaml.safe_load to the rule loader."
        )
        self.source = source


@dataclass(frozen=True)
class RuleLoadError:
    """A rule source that could not be loaded."""

    source: str
    message: str
    details: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _RuleSource:
    kind: Literal["file", "directory", "string", "programmatic"]
    name: str
    content: Optional[str] = None
    recursive: bool = True
    rules: tuple[Rule, ...] = ()


@dataclass
class RuleLoaderOptions:
    """Options for the rule loader."""

    logger: Logger
    parser: Optional[RuleParser] = None


class RuleLoader:
    """
    Loads and indexes rules.

    Loading is best-effort per source: a source that cannot be read, parsed
    or validated is recorded in ``errors`` and skipped, while other sources
    still load.

    Example:
        >>> import yaml
        >>> loader = RuleLoader(RuleLoaderOptions(logger=logger, parser=yaml.safe_load))
        >>> loader.load_from_directory("./toolgate/rules")
        >>> loader.get_rules_for_tool("read_file")
    """

    def __init__(self, options: RuleLoaderOptions):
        self._logger = options.logger
        self._parser = options.parser
        self._sources: list[_RuleSource] = []
        self._rule_sets: list[RuleSet] = []
        self._errors: list[RuleLoadError] = []
        self._index = RuleIndex()
        self._lock = threading.RLock()

    def set_parser(self, parser: RuleParser) -> None:
        self._parser = parser
        self._logger.debug("Rule parser configured")

    @property
    def has_parser(self) -> bool:
        return self._parser is not None

    @property
    def errors(self) -> tuple[RuleLoadError, ...]:
        return tuple(self._errors)

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self._sources)

    def load_from_directory(self, dir_path: Union[str, Path], recursive: bool = True) -> RuleIndex:
        """
        Load every ``.yaml`` / ``.yml`` file in a directory.

        Args:
            dir_path: Path to the directory
            recursive: Whether to search subdirectories
        """
        source = _RuleSource(kind="directory", name=str(dir_path), recursive=recursive)
        with self._lock:
            self._ingest(source)
            self._sources.append(source)
            self._rebuild()
            return self._index

    def load_from_file(self, file_path: Union[str, Path]) -> Optional[RuleSet]:
        """Load a single rule file. Returns the rule set, or None on failure."""
        source = _RuleSource(kind="file", name=str(file_path))
        with self._lock:
            loaded = self._ingest(source)
            self._sources.append(source)
            self._rebuild()
        return loaded[0] if loaded else None

    def load_from_string(self, content: str, source_name: str = "inline") -> Optional[RuleSet]:
        """Load rules from document text. Returns the rule set, or None on failure."""
        source = _RuleSource(kind="string", name=source_name, content=content)
        with self._lock:
            loaded = self._ingest(source)
            self._sources.append(source)
            self._rebuild()
        return loaded[0] if loaded else None

    def add_rules(
        self,
        rules: Sequence[Union[Rule, Mapping[str, Any]]],
        set_name: str = "programmatic",
    ) -> RuleSet:
        """
        Add rules directly, without parsing.

        Mappings are validated like parsed documents.

        Raises:
            RuleSchemaError: If a mapping is not a valid rule
        """
        converted = [r if isinstance(r, Rule) else None for r in rules]
        raw = [dict(r) for r in rules if not isinstance(r, Rule)]
        if raw:
            validate_rule_set({"rules": raw})
            parsed = iter(Rule.from_dict(r) for r in raw)
            converted = [r if r is not None else next(parsed) for r in converted]

        source = _RuleSource(
            kind="programmatic",
            name=set_name,
            rules=tuple(r for r in converted if r is not None),
        )
        with self._lock:
            loaded = self._ingest(source)
            self._sources.append(source)
            self._rebuild()

        self._logger.info(
            "Added rules programmatically",
            {"name": set_name, "count": len(source.rules)},
        )
        return loaded[0]

    def get_rules(self) -> RuleIndex:
        """Get the current rule index."""
        return self._index

    def get_rule_sets(self) -> tuple[RuleSet, ...]:
        return tuple(self._rule_sets)

    def get_rules_for_tool(self, tool_name: str) -> list[Rule]:
        """Get enabled rules for a tool: global rules first, then tool-specific ones."""
        return self._index.lookup(tool_name)

    def clear(self) -> None:
        """Forget all sources and rules."""
        with self._lock:
            self._sources = []
            self._reset()
        self._logger.debug("Cleared all rules")

    def reload(self) -> RuleIndex:
        """
        Rebuild the index by re-ingesting every source loaded so far.

        Files and directories are read again, strings parsed again, and
        programmatic rule sets added again, in their original order.
        """
        with self._lock:
            sources = list(self._sources)
            self._reset()
            for source in sources:
                self._ingest(source)
            self._rebuild()
            index = self._index

        self._logger.info(
            "Reloaded rules",
            {"source_count": len(sources), "total_rules": len(index.all_rules)},
        )
        return index

    def _reset(self) -> None:
        self._rule_sets = []
        self._errors = []
        self._index = RuleIndex()

    def _rebuild(self) -> None:
        self._index = RuleIndex.build(self._rule_sets)
        self._logger.debug(
            "Built rule index",
            {
                "total_rules": len(self._index.all_rules),
                "global_rules": len(self._index.global_rules),
                "tools_with_rules": len(self._index.rules_by_tool),
            },
        )

    def _ingest(self, source: _RuleSource) -> list[RuleSet]:
        if source.kind == "programmatic":
            rule_set = RuleSet(name=source.name, rules=list(source.rules))
            self._rule_sets.append(rule_set)
            return [rule_set]
        if source.kind == "directory":
            return self._ingest_directory(Path(source.name), source.recursive)
        if source.kind == "file":
            rule_set = self._ingest_file(Path(source.name))
        else:
            rule_set = self._ingest_text(source.content or "", source.name)
        return [rule_set] if rule_set else []

    def _ingest_directory(self, dir_path: Path, recursive: bool) -> list[RuleSet]:
        self._logger.info(
            "Loading rules from directory",
            {"path": str(dir_path), "recursive": recursive},
        )
        if not dir_path.is_dir():
            self._logger.warn("Rules directory does not exist", {"path": str(dir_path)})
            return []

        files = find_rule_files(dir_path, recursive)
        self._logger.debug("Found rule files", {"count": len(files)})

        loaded: list[RuleSet] = []
        for file_path in files:
            rule_set = self._ingest_file(file_path)
            if rule_set:
                loaded.append(rule_set)
        return loaded

    def _ingest_file(self, file_path: Path) -> Optional[RuleSet]:
        self._logger.debug("Loading rules from file", {"path": str(file_path)})
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as error:
            self._record_error(str(file_path), f"Cannot read rule file: {error}")
            return None
        return self._ingest_text(content, str(file_path))

    def _ingest_text(self, content: str, source: str) -> Optional[RuleSet]:
        if self._parser is None:
            raise RuleParserNotConfiguredError(source)

        try:
            data = self._parser(content)
        except Exception as error:
            self._record_error(source, f"Cannot parse rule document: {error}")
            return None

        if data is None:
            self._logger.warn("Empty rule document", {"source": source})
            return None

        try:
            rule_set = parse_rule_set(data, source)
        except RuleSchemaError as error:
            self._record_error(
                source,
                "Invalid rule document",
                [f"{e.path}: {e.message}" for e in error.errors],
            )
            return None

        self._rule_sets.append(rule_set)
        self._logger.info(
            "Loaded rule set",
            {"name": rule_set.name, "rule_count": len(rule_set.rules), "source": source},
        )
        return rule_set

    def _record_error(self, source: str, message: str, details: Optional[list[str]] = None) -> None:
        error = RuleLoadError(source=source, message=message, details=details or [])
        self._errors.append(error)
        self._logger.error(
            "Failed to load rule source",
            {"source": source, "message": message, "details": error.details},
        )


def parse_rule_set(data: Any, source: str) -> RuleSet:
    """
    Turn a parsed document into a rule set.

    Accepts a rule set mapping (with ``rules``), a bare list of rules, or a
    single rule mapping.

    Raises:
        RuleSchemaError: If the document or any of its rules is invalid
    """
    if isinstance(data, list):
        document: dict[str, Any] = {"name": source, "rules": data}
    elif isinstance(data, dict) and "rules" in data:
        document = data
    elif isinstance(data, dict) and ("id" in data or "name" in data):
        document = {"name": source, "rules": [data]}
    else:
        raise RuleSchemaError(
            [
                SchemaViolation(
                    path="/",
                    message="expected a rule set, a list of rules, or a single rule",
                    keyword="type",
                )
            ]
        )

    validate_rule_set(document)

    raw_settings = document.get("settings") or {}
    settings = (
        RuleSetSettings(
            default_action=raw_settings.get("default_action"),
            fail_mode=raw_settings.get("fail_mode"),
            global_tags=raw_settings.get("global_tags"),
        )
        if raw_settings
        else None
    )
    global_tags = (settings.global_tags if settings else None) or []

    rules = []
    for raw_rule in document["rules"]:
        if global_tags:
            tags = list(dict.fromkeys([*(raw_rule.get("tags") or []), *global_tags]))
            raw_rule = {**raw_rule, "tags": tags}
        rules.append(Rule.from_dict(raw_rule))

    return RuleSet(
        name=str(document.get("name") or source),
        rules=rules,
        version=str(document.get("version", "1.0")),
        description=document.get("description"),
        settings=settings,
    )


def find_rule_files(dir_path: Path, recursive: bool = True) -> list[Path]:
    """Find rule files in a directory, sorted for a stable load order."""
    pattern = "**/*" if recursive else "*"
    return sorted(
        p
        for p in dir_path.glob(pattern)
        if p.is_file() and p.suffix.lower() in RULE_FILE_EXTENSIONS
    )
